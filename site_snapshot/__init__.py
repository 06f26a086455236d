"""Capture live web pages as editable, self-contained static bundles."""

__version__ = "1.0.0"
