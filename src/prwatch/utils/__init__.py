"""Utility functions."""

from .console import console
from .observable import Observable

__all__ = [
    "console",
    "Observable",
]
