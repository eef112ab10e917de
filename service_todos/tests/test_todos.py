"""
Tests for the todo repository.
"""

import pytest

from shared.errors import QueryError, ValidationError
from service_todos.app.persistence.todos import MAX_TODO_LENGTH, TodoRepository


@pytest.fixture
def repository(make_pool):
    return TodoRepository(make_pool())


class TestTodoRepository:
    """Test cases for TodoRepository."""

    @pytest.mark.asyncio
    async def test_add_trims_text(self, repository, database):
        todo = await repository.add_todo("  buy milk  ")

        assert todo.text == "buy milk"
        assert todo.id == 1
        assert todo.created_at is not None
        assert database.todos[0]["text"] == "buy milk"

    @pytest.mark.asyncio
    async def test_list_newest_first(self, repository):
        await repository.add_todo("first")
        await repository.add_todo("second")

        todos = await repository.list_todos()

        assert [t.text for t in todos] == ["second", "first"]

    @pytest.mark.asyncio
    async def test_list_empty(self, repository):
        assert await repository.list_todos() == []

    @pytest.mark.asyncio
    @pytest.mark.parametrize("text", ["", "   ", "\t\n"])
    async def test_blank_text_rejected(self, repository, database, text):
        with pytest.raises(ValidationError):
            await repository.add_todo(text)

        assert database.statements == []

    @pytest.mark.asyncio
    async def test_text_too_long_rejected(self, repository):
        """Test text longer than the column allows never reaches the database."""
        with pytest.raises(ValidationError) as exc_info:
            await repository.add_todo("x" * (MAX_TODO_LENGTH + 1))

        assert exc_info.value.details == {"length": MAX_TODO_LENGTH + 1}

    @pytest.mark.asyncio
    async def test_text_at_limit_accepted(self, repository):
        todo = await repository.add_todo("x" * MAX_TODO_LENGTH)

        assert len(todo.text) == MAX_TODO_LENGTH

    @pytest.mark.asyncio
    async def test_database_failure_propagates(self, repository, database):
        database.error = ConnectionResetError("connection reset by peer")

        with pytest.raises(QueryError):
            await repository.list_todos()
