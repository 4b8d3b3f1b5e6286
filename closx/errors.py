"""Exception hierarchy shared across closx."""
from __future__ import annotations


class ClosxError(Exception):
    """Base error for closx failures that reach the user."""
    pass
