"""Dependency and version-compatibility resolution for a mod catalog."""

__version__ = "0.1.0"
