from sqlalchemy import String, TypeDecorator
from sqlalchemy.dialects import postgresql
import uuid


class GUID(TypeDecorator):
    """
    Platform-independent GUID type.

    Native UUID on PostgreSQL, String(36) everywhere else. Values always come
    back as uuid.UUID so services can compare ids without caring about the
    dialect.
    """
    impl = String
    cache_ok = True

    def load_dialect_impl(self, dialect):
        if dialect.name == 'postgresql':
            return dialect.type_descriptor(postgresql.UUID(as_uuid=True))
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is None:
            return value
        as_uuid = value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))
        if dialect.name == 'postgresql':
            return as_uuid
        # canonical lowercase string so ordering and equality are stable in SQLite
        return str(as_uuid)

    def process_result_value(self, value, dialect):
        if value is None:
            return value
        return value if isinstance(value, uuid.UUID) else uuid.UUID(str(value))


def coerce_uuid(value) -> uuid.UUID:
    """Accept a uuid.UUID or its string form; raise ValueError otherwise."""
    if isinstance(value, uuid.UUID):
        return value
    return uuid.UUID(str(value))
