"""Authenticated listing and single-flight upgrades of installed themes."""

__version__ = "1.1.1"
