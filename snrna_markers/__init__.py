"""Helpers for the theta/gamma marker snRNA-seq analysis."""

__version__ = "0.1.0"
