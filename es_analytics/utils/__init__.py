"""Shared utilities: logging, error classification and index naming."""
