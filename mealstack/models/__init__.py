"""Domain data models."""
