"""Configuration, dependencies and rate limiting."""
