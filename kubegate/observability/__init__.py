"""Logging and metrics for kubegate."""
