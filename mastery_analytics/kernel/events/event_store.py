"""
Event Store service for append-only audit logging.

State mutations are logged here BEFORE commit, inside the caller's
transaction, so an audit row exists exactly when the change it describes does.
"""

import uuid
from datetime import datetime
from typing import Any, Dict, Optional

from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from mastery_analytics.kernel.models.event_log import EventLog, EventType


class EventStore:
    """
    Service for managing the immutable event log.

    Usage:
        event_store = EventStore(session)
        await event_store.log(
            event_type=EventType.SNAPSHOT_RECORDED,
            entity_type="mastery_snapshot",
            entity_id=str(row.id),
            user_id=row.user_id,
            payload={"course_id": row.course_id},
        )
    """

    def __init__(self, session: AsyncSession):
        self.session = session

    async def log(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: str,
        user_id: Optional[uuid.UUID] = None,
        payload: Optional[Dict[str, Any]] = None,
    ) -> EventLog:
        """
        Add an event to the audit log.

        Args:
            event_type: The type of event
            entity_type: The type of entity (e.g. mastery_snapshot)
            entity_id: The ID of the entity, as text
            user_id: The learner the event concerns
            payload: Additional event data

        Returns:
            The created EventLog record (flushed by the caller's commit)
        """
        event = EventLog(
            event_type=event_type.value,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=self._serialize_payload(payload) if payload else {},
        )
        self.session.add(event)
        return event

    async def log_from_model(
        self,
        event_type: EventType,
        entity_type: str,
        entity_id: str,
        user_id: Optional[uuid.UUID],
        payload_model: BaseModel,
    ) -> EventLog:
        """Log an event using a Pydantic model as payload."""
        return await self.log(
            event_type=event_type,
            entity_type=entity_type,
            entity_id=entity_id,
            user_id=user_id,
            payload=payload_model.model_dump(mode="json"),
        )

    def _serialize_payload(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Convert payload values to JSON-serializable types."""
        result: Dict[str, Any] = {}
        for key, value in payload.items():
            result[key] = self._serialize_value(value)
        return result

    def _serialize_value(self, value: Any) -> Any:
        if isinstance(value, uuid.UUID):
            return str(value)
        if isinstance(value, datetime):
            return value.isoformat()
        if isinstance(value, dict):
            return self._serialize_payload(value)
        if isinstance(value, (list, tuple)):
            return [self._serialize_value(v) for v in value]
        return value
