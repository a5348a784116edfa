"""Core store operations."""
