"""
Todo repository.
"""

from typing import List

from shared.errors import ValidationError
from ..models import Todo
from .pool import ConnectionPool

MAX_TODO_LENGTH = 255


class TodoRepository:
    """Reads and writes todo items through the pool."""

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    async def list_todos(self) -> List[Todo]:
        """All todos, newest first."""
        rows = await self.pool.query(
            "SELECT id, text, created_at FROM todos ORDER BY created_at DESC, id DESC"
        )
        return [Todo(**row) for row in rows]

    async def add_todo(self, text: str) -> Todo:
        """Store a todo with surrounding whitespace removed."""
        text = text.strip()
        if not text:
            raise ValidationError("Todo text cannot be empty.")
        if len(text) > MAX_TODO_LENGTH:
            raise ValidationError(
                f"Todo text cannot exceed {MAX_TODO_LENGTH} characters.",
                details={"length": len(text)}
            )

        rows = await self.pool.query(
            "INSERT INTO todos (text) VALUES ($1) RETURNING id, text, created_at",
            text
        )
        return Todo(**rows[0])
