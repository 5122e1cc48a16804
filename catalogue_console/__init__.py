"""Catalogue Console: data catalogue and forms administration service."""

__version__ = "0.1.0"
