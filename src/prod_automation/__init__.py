"""Prod remote host configuration toolkit."""

from .runner import ControlManager
from .inventory import ScriptLoader

__all__ = ["ControlManager", "ScriptLoader"]
