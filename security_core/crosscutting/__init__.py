"""Crosscutting: config, logging, errors, middleware."""
