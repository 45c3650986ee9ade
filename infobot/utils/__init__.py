"""Shared utilities: exception hierarchy and backoff control."""
