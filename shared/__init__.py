"""Shared utilities used across forgestats."""
