"""Command line interface for preflight."""
