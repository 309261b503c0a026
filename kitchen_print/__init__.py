"""Automatic kitchen slip printing for paid orders."""
