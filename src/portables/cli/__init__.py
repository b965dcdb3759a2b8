"""
CLI layer for portables.

Provides a Typer application that delegates to the job store and the
orchestration runner. This package handles only terminal transport:
argument parsing, coloured output, and table formatting.

Entry point::

    portables --help
"""

from portables.cli.app import app

__all__ = ["app"]
