"""
Generic PostgreSQL connection management.
Shared by the ingestion and analytics stores.
"""

from contextlib import contextmanager

import psycopg2
import structlog

from .config import PostgresSettings

logger = structlog.get_logger(__name__)


class PostgresConnection:
    """Base class for PostgreSQL connection management"""

    def __init__(self, settings: PostgresSettings):
        self.settings = settings
        self.connection = None
        self._connect()

    def _connect(self):
        """Establish connection to PostgreSQL"""
        try:
            self.connection = psycopg2.connect(
                host=self.settings.host,
                port=self.settings.port,
                database=self.settings.database,
                user=self.settings.user,
                password=self.settings.password,
                connect_timeout=10,
            )
            logger.info(
                "PostgreSQL connection established",
                host=self.settings.host,
                database=self.settings.database,
            )
        except Exception as e:
            logger.error("Failed to connect to PostgreSQL", error=str(e))
            raise

    @contextmanager
    def get_cursor(self):
        """Context manager for database cursor with automatic commit/rollback

        Everything executed inside one ``with`` block is a single transaction.
        """
        cursor = self.connection.cursor()
        try:
            yield cursor
            self.connection.commit()
        except Exception as e:
            self.connection.rollback()
            logger.error("Database operation failed", error=str(e))
            raise
        finally:
            cursor.close()

    def fetch_dicts(self, query: str, params=None) -> list[dict]:
        """Run a SELECT and return rows as column -> value dicts"""
        with self.get_cursor() as cursor:
            cursor.execute(query, params)
            columns = [desc[0] for desc in cursor.description]
            return [dict(zip(columns, row, strict=False)) for row in cursor.fetchall()]

    def check_health(self) -> bool:
        """Check if database connection is healthy"""
        try:
            with self.get_cursor() as cursor:
                cursor.execute("SELECT 1")
                return cursor.fetchone()[0] == 1
        except Exception as e:
            logger.error("Database health check failed", error=str(e))
            return False

    def close(self):
        """Close database connection"""
        if self.connection:
            self.connection.close()
            logger.info("PostgreSQL connection closed")
