"""Utilities shared across pycovmap."""
