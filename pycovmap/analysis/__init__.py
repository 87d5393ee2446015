"""Analyses producing new coverages from existing ones."""
