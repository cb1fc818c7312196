"""
Column types for the identity store, shared by sqlite (local runs, tests) and PostgreSQL.
"""
import uuid
from sqlalchemy import String, TypeDecorator


class UuidType(TypeDecorator):
    """User ids as canonical 36-char strings. Binds accept a UUID or its string form; reads return UUID."""
    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        # normalizes case and rejects malformed ids before they reach the query
        return str(value if isinstance(value, uuid.UUID) else uuid.UUID(str(value)))

    def process_result_value(self, value, dialect):
        return uuid.UUID(value) if value is not None else None
