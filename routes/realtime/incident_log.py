from collections import deque
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
import logging
import uuid

from pydantic import BaseModel, Field

from configurations.config import settings

logger = logging.getLogger(__name__)


class IncidentLevel(str, Enum):
    INFO = "info"
    WARNING = "warning"
    ERROR = "error"

class Incident(BaseModel):
    id: str = Field(default_factory=lambda: uuid.uuid4().hex[:12])
    time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    message: str
    level: IncidentLevel = IncidentLevel.INFO


class IncidentLog:
    """Rolling on-screen incident feed, newest first"""

    def __init__(self, max_entries: int = settings.INCIDENT_LOG_SIZE):
        self._entries: deque = deque(maxlen=max_entries)

    def add(self, message: str, level: IncidentLevel = IncidentLevel.INFO, time: Optional[datetime] = None) -> Incident:
        incident = Incident(message=message, level=level)
        if time is not None:
            incident.time = time
        self._entries.appendleft(incident)

        log = logger.error if level == IncidentLevel.ERROR else logger.warning if level == IncidentLevel.WARNING else logger.info
        log(f"Incident: {message}")
        return incident

    def entries(self) -> List[Incident]:
        return list(self._entries)

    def clear(self):
        self._entries.clear()

    def __len__(self):
        return len(self._entries)
