"""Companion core package."""

from .config import CoreConfig
from .core import AssistantCore, build_core

__all__ = ["AssistantCore", "CoreConfig", "build_core"]
