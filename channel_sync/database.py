"""
Database access through asyncpg connection pools.

Every component talks to the databases through Database.execute(),
which returns rows as plain dictionaries and wraps driver failures
in DatabaseError.
"""
import asyncio
import logging
from typing import Any, Dict, List, Optional

import asyncpg

from .config import DatabaseSettings
from .exceptions import DatabaseError

logger = logging.getLogger(__name__)


class Database:
    """
    Async connection pool for one database.

    Features:
    - Bounded pool (waits for a free connection beyond the limit)
    - Uniform execute(query, *params) -> rows interface
    - Driver errors wrapped in DatabaseError
    """

    def __init__(self, settings: DatabaseSettings, label: str = "database"):
        """
        Initialize the database wrapper.

        Args:
            settings: Connection settings.
            label: Name used in log messages.
        """
        self.settings = settings
        self.label = label
        self._pool: Optional[asyncpg.Pool] = None

    @property
    def is_connected(self) -> bool:
        return self._pool is not None

    async def connect(self) -> None:
        """Create the connection pool and check it with a trivial query."""
        if self._pool is not None:
            return

        try:
            self._pool = await asyncpg.create_pool(
                dsn=self.settings.dsn,
                min_size=self.settings.pool_min_size,
                max_size=self.settings.pool_max_size,
                command_timeout=self.settings.command_timeout,
            )
        except (asyncpg.PostgresError, OSError) as e:
            raise DatabaseError(f"Failed to connect to {self.label}", e) from e

        try:
            await self.ping()
        except DatabaseError:
            await self.disconnect()
            raise

        logger.info(
            f"Connected to {self.label} at "
            f"{self.settings.host}:{self.settings.port}/{self.settings.name}"
        )

    async def disconnect(self) -> None:
        """Close the connection pool."""
        if self._pool:
            await self._pool.close()
            self._pool = None
            logger.info(f"Disconnected from {self.label}")

    async def ping(self) -> None:
        """Run SELECT 1; raises DatabaseError when the database is unreachable."""
        await self.execute("SELECT 1")

    async def execute(self, query: str, *params: Any) -> List[Dict[str, Any]]:
        """
        Run a query and return its rows.

        Args:
            query: SQL with $1..$n placeholders.
            params: Positional query parameters.

        Returns:
            List of rows as dictionaries (empty for statements without results).

        Raises:
            DatabaseError: If the pool is not connected or the query fails.
        """
        if self._pool is None:
            raise DatabaseError(f"{self.label} is not connected", query=query)

        try:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query, *params)
        except (asyncpg.PostgresError, asyncpg.InterfaceError, OSError, asyncio.TimeoutError) as e:
            raise DatabaseError(f"Query failed on {self.label}", e, query) from e

        return [dict(row) for row in rows]
