"""Command-line interface for Warden."""

from warden.cli.main import main

__all__ = ["main"]
