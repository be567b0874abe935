"""Declarative base and portable column types shared by all DeployHub models.

Production runs on PostgreSQL (native UUID and JSONB); the same models map to
TEXT/JSON elsewhere so repository tests can use an in-memory SQLite database.
"""

import uuid
from datetime import UTC, datetime

from sqlalchemy import JSON, Text
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.dialects.postgresql import UUID as PG_UUID
from sqlalchemy.orm import DeclarativeBase

UUIDType = Text().with_variant(PG_UUID(as_uuid=False), "postgresql")
JSONType = JSON().with_variant(JSONB(), "postgresql")


class Base(DeclarativeBase):
    pass


def new_id() -> str:
    return str(uuid.uuid4())


def utcnow() -> datetime:
    return datetime.now(UTC)
