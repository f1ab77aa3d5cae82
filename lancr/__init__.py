"""Lancr - billable time tracking core (timer engine, serialized store, backups)"""

from .core import TrackerCore

__all__ = ["TrackerCore"]
