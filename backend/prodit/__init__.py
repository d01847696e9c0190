"""Prodit: Xero product catalog editor backend."""

__version__ = "3.0.0"
