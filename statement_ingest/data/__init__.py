"""Packaged data tables (category rules)."""
