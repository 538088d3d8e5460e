"""Personalized news feed aggregation."""
