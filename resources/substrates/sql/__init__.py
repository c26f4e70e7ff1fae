"""SQL substrate exports."""

from resources.substrates.sql.engine import create_sql_engine, ping
from resources.substrates.sql.session import (
    create_session_factory,
    transactional_session,
)

__all__ = [
    "create_session_factory",
    "create_sql_engine",
    "ping",
    "transactional_session",
]
