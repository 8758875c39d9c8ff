"""Packaged device definitions."""
