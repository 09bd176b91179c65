"""Data models for the directory layer."""
