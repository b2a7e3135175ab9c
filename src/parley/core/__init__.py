"""Core module for Parley."""

from .commands import CommandDefinition, CommandKind
from .parser import parse
from .registry import CommandRegistry
from .template import ExpansionContext, expand

__all__ = ["CommandDefinition", "CommandKind", "CommandRegistry", "ExpansionContext", "expand", "parse"]
