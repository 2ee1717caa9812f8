"""
Typer CLI for hfsubset.

This module exports the main Typer application that provides the command-line
interface for subsetting the hydrofabric.
"""

from .main import app

__all__ = ["app"]
