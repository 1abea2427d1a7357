"""Startup diagnostics harness for server configurations."""
