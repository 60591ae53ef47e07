"""Auth module — identity resolution and the leave authorization policy."""
