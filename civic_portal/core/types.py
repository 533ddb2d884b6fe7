"""Custom SQLAlchemy column types shared by the ORM models."""
import enum
import uuid
from typing import Type

from sqlalchemy import Enum as SQLEnum, String, TypeDecorator


def generate_uuid() -> str:
    """Generate a UUID string"""
    return str(uuid.uuid4())


class GUID(TypeDecorator):
    """UUID stored as VARCHAR(36) on every backend."""
    impl = String(36)
    cache_ok = True

    def load_dialect_impl(self, dialect):
        return dialect.type_descriptor(String(36))

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return value

    def process_result_value(self, value, dialect):
        if value is not None:
            return str(value)
        return value


def enum_type(enum_cls: Type[enum.Enum]) -> SQLEnum:
    """Enum column persisted by value (``"in_progress"``) rather than member name."""
    return SQLEnum(
        enum_cls,
        values_callable=lambda members: [m.value for m in members],
        native_enum=False,
        length=32,
        validate_strings=True,
    )
