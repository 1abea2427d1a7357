"""Cross-cutting errors and logging."""
