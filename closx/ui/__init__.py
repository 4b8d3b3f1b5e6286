"""Terminal UI components for the closx CLI."""
from .confirm import ConfirmationPrompt, read_line
from .display import ConsoleDisplay

__all__ = [
    "ConfirmationPrompt",
    "ConsoleDisplay",
    "read_line",
]
