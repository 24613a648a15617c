"""Command-line entry points for import jobs."""

from admin_console.jobs.cli import main

__all__ = ["main"]
