"""
Schema bootstrap for the Todo service.
"""

from shared.errors import SchemaError, ServiceException
from shared.logging import get_logger
from .pool import ConnectionPool

CREATE_TODOS_TABLE = """
    CREATE TABLE IF NOT EXISTS todos (
        id SERIAL PRIMARY KEY,
        text VARCHAR(255) NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE DEFAULT CURRENT_TIMESTAMP
    );
"""


class SchemaInitializer:
    """Creates the todos table if it does not exist yet."""

    def __init__(self, pool: ConnectionPool):
        self.pool = pool
        self.logger = get_logger("todos.persistence.schema")

    async def ensure_schema(self):
        """Idempotent; must complete before the HTTP server starts."""
        self.logger.info("Connecting to database for schema setup")
        try:
            async with self.pool.connection() as conn:
                await conn.execute(CREATE_TODOS_TABLE)
        except ServiceException as e:
            self.logger.error("Error setting up database table", code=e.code, error=e.message)
            raise SchemaError(f"Failed to set up todos table: {e.message}", details=e.details) from e
        except Exception as e:
            self.logger.error("Error setting up database table", error=str(e))
            raise SchemaError(f"Failed to set up todos table: {e}") from e

        self.logger.info("Table todos is ready")
