"""Logging setup and error escalation."""
