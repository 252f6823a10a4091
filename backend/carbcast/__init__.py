"""Carbohydrate absorption and glucose-effect projection."""

__version__ = "0.1.0"
