"""Staff module — the staff directory consumed by the leave engine."""
