"""Serializer mixins shared by response DTOs."""

from __future__ import annotations

from datetime import datetime
from uuid import UUID

from pydantic import field_serializer


class CommonSerializersMixin:
    """Render ``id`` as a string and ``created_at`` as ISO 8601."""

    @field_serializer("id", check_fields=False)
    def serialize_id(self, value: UUID) -> str:
        return str(value)

    @field_serializer("created_at", check_fields=False)
    def serialize_created_at(self, value: datetime) -> str:
        return value.isoformat()
