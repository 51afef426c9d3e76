"""
Database connection and query module.

Provides a clean interface for database operations with support
for both PostgreSQL and SQLite backends.
"""

import logging
import os
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import asyncpg
import aiosqlite

from config import config

logger = logging.getLogger(__name__)


class Database:
    """
    Async database connection manager.

    Supports PostgreSQL (production) and SQLite (development).
    Provides connection pooling and query execution methods.
    """

    def __init__(self, database_url: Optional[str] = None):
        """
        Initialize database manager.

        Args:
            database_url: Database connection URL. Uses config if not provided.
        """
        self.database_url = database_url or config.database.url
        self._pool = None
        self._sqlite_conn = None
        self._is_postgres = self.database_url.startswith('postgresql')

    @property
    def is_postgres(self) -> bool:
        return self._is_postgres

    async def connect(self) -> None:
        """Establish database connection(s)."""
        if self._is_postgres:
            logger.info("Connecting to PostgreSQL database...")
            self._pool = await asyncpg.create_pool(
                self.database_url,
                min_size=2,
                max_size=10,
                command_timeout=60
            )
        else:
            # SQLite for development
            db_path = self.database_url.replace('sqlite:///', '')
            logger.info(f"Connecting to SQLite database: {db_path}")
            self._sqlite_conn = await aiosqlite.connect(db_path)
            self._sqlite_conn.row_factory = aiosqlite.Row

        logger.info("Database connection established")

    async def disconnect(self) -> None:
        """Close database connection(s)."""
        if self._is_postgres and self._pool:
            await self._pool.close()
            self._pool = None
        elif self._sqlite_conn:
            await self._sqlite_conn.close()
            self._sqlite_conn = None

        logger.info("Database connection closed")

    async def execute(self, query: str, *args) -> int:
        """
        Execute a query without returning results.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            Number of affected rows
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                status = await conn.execute(query, *args)
            # Status looks like "UPDATE 1" or "INSERT 0 1"
            try:
                return int(status.split()[-1])
            except (ValueError, IndexError):
                return 0
        else:
            sqlite_query = self._convert_params(query)
            cursor = await self._sqlite_conn.execute(sqlite_query, args)
            await self._sqlite_conn.commit()
            return cursor.rowcount

    async def fetch_one(self, query: str, *args) -> Optional[Dict[str, Any]]:
        """
        Execute a query and fetch one row.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            Row as dictionary or None if no results
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                row = await conn.fetchrow(query, *args)
                return dict(row) if row else None
        else:
            # Convert $1, $2 style params to ?1, ?2 for SQLite
            sqlite_query = self._convert_params(query)
            cursor = await self._sqlite_conn.execute(sqlite_query, args)
            row = await cursor.fetchone()
            if row:
                columns = [d[0] for d in cursor.description]
                return dict(zip(columns, row))
            return None

    async def fetch_all(self, query: str, *args) -> List[Dict[str, Any]]:
        """
        Execute a query and fetch all rows.

        Args:
            query: SQL query to execute
            *args: Query parameters

        Returns:
            List of rows as dictionaries
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                rows = await conn.fetch(query, *args)
                return [dict(row) for row in rows]
        else:
            sqlite_query = self._convert_params(query)
            cursor = await self._sqlite_conn.execute(sqlite_query, args)
            rows = await cursor.fetchall()
            if rows:
                columns = [d[0] for d in cursor.description]
                return [dict(zip(columns, row)) for row in rows]
            return []

    async def execute_many(self, query: str, args_list: List[Tuple]) -> None:
        """
        Execute a query multiple times with different parameters.

        Args:
            query: SQL query to execute
            args_list: List of parameter tuples
        """
        if self._is_postgres:
            async with self._pool.acquire() as conn:
                await conn.executemany(query, args_list)
        else:
            sqlite_query = self._convert_params(query)
            await self._sqlite_conn.executemany(sqlite_query, args_list)
            await self._sqlite_conn.commit()

    def _convert_params(self, query: str) -> str:
        """Convert PostgreSQL $1, $2 style params to SQLite ?1, ?2 style."""
        # Numbered so that a parameter may appear more than once
        return re.sub(r'\$(\d+)', r'?\1', query)

    def _ts(self, value: Optional[datetime]) -> Any:
        """Timestamps go to asyncpg as datetimes and to SQLite as ISO strings."""
        if value is None or self._is_postgres:
            return value
        return value.isoformat()

    async def init_schema(self) -> None:
        """Initialize database schema from schema.sql file."""
        schema_path = os.path.join(os.path.dirname(__file__), 'schema.sql')

        with open(schema_path, 'r') as f:
            schema = f.read()

        # Drop comment lines, then split by semicolons
        lines = [line for line in schema.splitlines() if not line.strip().startswith('--')]
        statements = [s.strip() for s in '\n'.join(lines).split(';') if s.strip()]

        for statement in statements:
            if not self._is_postgres:
                statement = statement.replace('SERIAL', 'INTEGER')
                statement = statement.replace('TIMESTAMPTZ', 'TEXT')

            try:
                if self._is_postgres:
                    async with self._pool.acquire() as conn:
                        await conn.execute(statement)
                else:
                    await self._sqlite_conn.execute(statement)
            except Exception as e:
                # Log but continue - some statements may fail on re-run
                logger.debug(f"Schema statement skipped: {e}")

        if not self._is_postgres:
            await self._sqlite_conn.commit()

        logger.info("Database schema initialized")

    # -------------------------------------------------------------------------
    # Text Notification Operations
    # -------------------------------------------------------------------------

    async def save_text_notifications(self, rows: List[Tuple[str, str, str]]) -> None:
        """
        Store raw notification items as received.

        Args:
            rows: (psp_reference, event_code, raw_json) tuples
        """
        if not rows:
            return

        now = self._ts(datetime.now(timezone.utc))
        await self.execute_many(
            """
            INSERT INTO text_notifications (psp_reference, event_code, text_notification, created_at)
            VALUES ($1, $2, $3, $4)
            """,
            [(psp, code, text, now) for psp, code, text in rows]
        )

    async def count_text_notifications(self) -> int:
        """Count stored raw notifications."""
        result = await self.fetch_one("SELECT COUNT(*) AS total FROM text_notifications")
        return result['total'] if result else 0

    # -------------------------------------------------------------------------
    # Notification Operations
    # -------------------------------------------------------------------------

    async def insert_notification_if_absent(
        self,
        psp_reference: str,
        event_code: str,
        merchant_reference: str,
        original_reference: str,
        merchant_account_code: str,
        success: bool,
        amount_value: Optional[int],
        amount_currency: Optional[str],
        payload: str,
        received_at: datetime
    ) -> Optional[Dict[str, Any]]:
        """
        Insert a notification unless its event key already exists.

        The unique constraint on (psp_reference, event_code, merchant_reference)
        makes this a single atomic step; no prior read is involved.

        Returns:
            The inserted row, or None if a row with the same key exists
        """
        if self._is_postgres:
            return await self.fetch_one(
                """
                INSERT INTO notifications
                    (psp_reference, event_code, merchant_reference, original_reference,
                     merchant_account_code, success, amount_value, amount_currency,
                     payload, status, received_at, claimed_at)
                VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, 'received', $10, $10)
                ON CONFLICT (psp_reference, event_code, merchant_reference) DO NOTHING
                RETURNING *
                """,
                psp_reference, event_code, merchant_reference, original_reference,
                merchant_account_code, success, amount_value, amount_currency,
                payload, received_at
            )

        inserted = await self.execute(
            """
            INSERT OR IGNORE INTO notifications
                (psp_reference, event_code, merchant_reference, original_reference,
                 merchant_account_code, success, amount_value, amount_currency,
                 payload, status, received_at, claimed_at)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, 'received', $10, $10)
            """,
            psp_reference, event_code, merchant_reference, original_reference,
            merchant_account_code, success, amount_value, amount_currency,
            payload, received_at.isoformat()
        )
        if inserted != 1:
            return None
        return await self.get_notification_by_key(psp_reference, event_code, merchant_reference)

    async def claim_stale_notification(
        self,
        psp_reference: str,
        event_code: str,
        merchant_reference: str,
        stale_before: datetime
    ) -> Optional[Dict[str, Any]]:
        """
        Take over a RECEIVED notification whose claim has gone stale.

        Returns:
            The claimed row, or None if it is terminal or freshly claimed
        """
        now = datetime.now(timezone.utc)
        updated = await self.execute(
            """
            UPDATE notifications
            SET claimed_at = $1
            WHERE psp_reference = $2 AND event_code = $3 AND merchant_reference = $4
              AND status = 'received' AND claimed_at < $5
            """,
            self._ts(now), psp_reference, event_code, merchant_reference,
            self._ts(stale_before)
        )
        if updated != 1:
            return None
        return await self.get_notification_by_key(psp_reference, event_code, merchant_reference)

    async def get_notification(self, notification_id: int) -> Optional[Dict[str, Any]]:
        """Get notification by ID."""
        return await self.fetch_one(
            "SELECT * FROM notifications WHERE id = $1",
            notification_id
        )

    async def get_notification_by_key(
        self,
        psp_reference: str,
        event_code: str,
        merchant_reference: str
    ) -> Optional[Dict[str, Any]]:
        """Get notification by its event key."""
        return await self.fetch_one(
            """
            SELECT * FROM notifications
            WHERE psp_reference = $1 AND event_code = $2 AND merchant_reference = $3
            """,
            psp_reference, event_code, merchant_reference
        )

    async def get_notifications_by_status(self, status: str) -> List[Dict[str, Any]]:
        """Get all notifications with the given status, oldest first."""
        return await self.fetch_all(
            "SELECT * FROM notifications WHERE status = $1 ORDER BY id",
            status
        )

    async def finish_notification(
        self,
        notification_id: int,
        status: str,
        detail: Optional[str]
    ) -> bool:
        """
        Move a RECEIVED notification to a terminal status.

        Returns:
            True if the row was updated, False if it was already terminal
        """
        updated = await self.execute(
            """
            UPDATE notifications
            SET status = $1, detail = $2, processed_at = $3
            WHERE id = $4 AND status = 'received'
            """,
            status, detail, self._ts(datetime.now(timezone.utc)), notification_id
        )
        return updated == 1

    # -------------------------------------------------------------------------
    # Credential Operations
    # -------------------------------------------------------------------------

    async def get_merchant_credentials(self, merchant_account: str) -> Optional[Dict[str, Any]]:
        """Get active notification credentials for a merchant account."""
        return await self.fetch_one(
            """
            SELECT * FROM merchant_credentials
            WHERE merchant_account = $1 AND is_active = TRUE
            """,
            merchant_account
        )

    async def upsert_merchant_credentials(
        self,
        merchant_account: str,
        username: Optional[str] = None,
        password: Optional[str] = None,
        hmac_key: Optional[str] = None,
        is_active: bool = True
    ) -> None:
        """Create or replace credentials for a merchant account."""
        if self._is_postgres:
            await self.execute(
                """
                INSERT INTO merchant_credentials (merchant_account, username, password, hmac_key, is_active)
                VALUES ($1, $2, $3, $4, $5)
                ON CONFLICT (merchant_account) DO UPDATE SET
                    username = EXCLUDED.username,
                    password = EXCLUDED.password,
                    hmac_key = EXCLUDED.hmac_key,
                    is_active = EXCLUDED.is_active
                """,
                merchant_account, username, password, hmac_key, is_active
            )
        else:
            await self.execute(
                """
                INSERT OR REPLACE INTO merchant_credentials
                    (merchant_account, username, password, hmac_key, is_active)
                VALUES ($1, $2, $3, $4, $5)
                """,
                merchant_account, username, password, hmac_key, is_active
            )

