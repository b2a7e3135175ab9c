"""Conversation session state."""

from .message import ConversationTurn, TurnKind
from .tabs import AppMode, SessionTab, TabManager

__all__ = ["AppMode", "ConversationTurn", "SessionTab", "TabManager", "TurnKind"]
