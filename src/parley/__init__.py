"""Parley - slash-command and dialogue orchestration for multi-agent chat."""

from .core import CommandRegistry, parse
from .engine import ConversationEngine

__version__ = "0.1.0"

__all__ = ["CommandRegistry", "ConversationEngine", "parse"]
