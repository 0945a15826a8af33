"""Core infrastructure: database, errors, logging, security."""
