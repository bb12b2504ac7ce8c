"""Core domain: models, errors and configuration."""
