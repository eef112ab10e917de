"""
Data models for the Todo service.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, Field


class Todo(BaseModel):
    """A stored todo item."""
    id: int = Field(..., description="Todo identifier")
    text: str = Field(..., description="Todo text, trimmed")
    created_at: Optional[datetime] = Field(None, description="Creation timestamp")


class TodoCreatedResponse(BaseModel):
    message: str = "Todo added successfully!"
    todo: Todo
