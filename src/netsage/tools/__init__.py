"""Wrappers around external scanning tools."""
