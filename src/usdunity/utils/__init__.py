"""Numeric helpers shared by both translators."""
