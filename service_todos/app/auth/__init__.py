"""
Login gate for the Todo service.
"""

from .session import SessionAuth, SESSION_FLAG

__all__ = [
    "SessionAuth",
    "SESSION_FLAG",
]
