"""Shared utilities: configuration, logging, error handling, repositories."""
