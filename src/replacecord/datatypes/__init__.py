"""Datatypes shared across the replacement workflow."""
