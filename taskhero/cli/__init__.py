"""Command line interface."""

from taskhero.cli import commands  # noqa: F401  registers extra commands
from taskhero.cli.main import app

__all__ = ["app"]
