"""HRMS leave request engine."""
