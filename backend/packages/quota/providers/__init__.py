"""Quota providers - usage stores and notification delivery."""
