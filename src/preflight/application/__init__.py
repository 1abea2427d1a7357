"""Application workflows built on the diagnose engine."""
