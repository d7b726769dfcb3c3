"""Paginated discovery cache for remote model catalogs."""

__version__ = "0.1.0"
