"""
Settings shared by every entry point.
"""

import argparse
import os
from dataclasses import dataclass

from dotenv import load_dotenv

load_dotenv()


@dataclass
class PostgresSettings:
    """Connection settings for the analytics database"""

    host: str = "localhost"
    port: int = 5432
    database: str = "analytics_db"
    user: str = "analytics"
    password: str = "analytics_password"

    @classmethod
    def from_env(cls) -> "PostgresSettings":
        return cls(
            host=os.getenv("POSTGRES_HOST", cls.host),
            port=int(os.getenv("POSTGRES_PORT", str(cls.port))),
            database=os.getenv("POSTGRES_DB", cls.database),
            user=os.getenv("POSTGRES_USER", cls.user),
            password=os.getenv("POSTGRES_PASSWORD", cls.password),
        )


def add_postgres_arguments(parser: argparse.ArgumentParser) -> None:
    """Register the PostgreSQL flags (defaults come from the environment)"""
    defaults = PostgresSettings.from_env()

    parser.add_argument(
        "--postgres-host",
        default=defaults.host,
        help=f"PostgreSQL host (default: {defaults.host} or POSTGRES_HOST env var)",
    )
    parser.add_argument(
        "--postgres-port",
        type=int,
        default=defaults.port,
        help=f"PostgreSQL port (default: {defaults.port} or POSTGRES_PORT env var)",
    )
    parser.add_argument(
        "--postgres-db",
        default=defaults.database,
        help=f"PostgreSQL database (default: {defaults.database} or POSTGRES_DB env var)",
    )
    parser.add_argument(
        "--postgres-user",
        default=defaults.user,
        help="PostgreSQL user (default: POSTGRES_USER env var)",
    )
    parser.add_argument(
        "--postgres-password",
        default=defaults.password,
        help="PostgreSQL password (default: POSTGRES_PASSWORD env var)",
    )


def postgres_settings_from_args(args) -> PostgresSettings:
    return PostgresSettings(
        host=args.postgres_host,
        port=args.postgres_port,
        database=args.postgres_db,
        user=args.postgres_user,
        password=args.postgres_password,
    )
