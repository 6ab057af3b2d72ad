"""Resumable importer synchronising video catalogs into a content-addressed index."""

__version__ = "0.3.0"
