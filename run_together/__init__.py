"""Realtime multiplayer race state engine."""

from utils.meta import ENGINE_VERSION

__version__ = ENGINE_VERSION

__all__ = ["__version__"]
