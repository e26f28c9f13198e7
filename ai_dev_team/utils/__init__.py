"""Shared utilities: structured logging setup and retry with backoff."""
