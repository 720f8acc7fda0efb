"""Collect vulnerability records from security feeds and write encrypted database files."""

__version__ = "0.9.0"