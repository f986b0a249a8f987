"""Folio - editorial content workflow engine and publishing scheduler."""

__version__ = "0.1.0"
