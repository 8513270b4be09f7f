"""Command line interface for mailforge."""

from mailforge.cli.app import app

__all__ = ["app"]
