"""
Core utilities shared across the application.
"""

from .config import PostgresSettings
from .database import PostgresConnection
from .logger import setup_logging

__all__ = ["PostgresConnection", "PostgresSettings", "setup_logging"]
