"""Filelink: file uploads linked to relational database rows."""

__version__ = "0.1.0"
