"""Settings and server configuration loading."""
