"""CLI module for har-capturer.

This package provides the ``har-capturer`` command-line interface for live
capture and offline conversion of CDP event logs.
"""

from .main import ExitCode, app

__all__ = [
    'ExitCode',
    'app',
]
