"""Background jobs for membership state."""
