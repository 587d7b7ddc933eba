"""Artifact approval engine for project governance."""

__version__ = "0.3.0"
