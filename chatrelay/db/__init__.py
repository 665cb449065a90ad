"""Database module exports."""

from chatrelay.db.models import Base, ConversationRecord
from chatrelay.db.session import (
    check_db_health,
    close_db,
    create_engine,
    get_engine,
    get_session_factory,
    init_db,
    make_session_factory,
    session_scope,
)

__all__ = [
    # Models
    "Base",
    "ConversationRecord",
    # Session management
    "check_db_health",
    "close_db",
    "create_engine",
    "get_engine",
    "get_session_factory",
    "init_db",
    "make_session_factory",
    "session_scope",
]
