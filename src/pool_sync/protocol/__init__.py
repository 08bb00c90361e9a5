"""Wire protocol for the controller's streaming socket."""

from __future__ import annotations

from . import frames
from .frames import *  # noqa: F401,F403

__all__ = list(frames.__all__)
