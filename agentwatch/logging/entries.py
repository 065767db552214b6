"""
Log Entry Data Structures for Agentwatch.

Structured audit records for events leaving the router.
"""

import json
from dataclasses import asdict, dataclass
from datetime import datetime


def now_iso() -> str:
    """Get current datetime as ISO string."""
    return datetime.now().isoformat()


@dataclass
class RouteLogEntry:
    """Log entry for one domain event published by the router."""

    # Identity
    timestamp: str  # ISO 8601, wall clock at publish time
    kind: str  # "task_started", "todos_updated", ...

    # Correlation
    task_id: str | None = None
    session_id: str | None = None
    event_timestamp_ms: int | None = None  # Producer timestamp, when the event carries one

    # Payload summary
    tool: str | None = None
    item_count: int | None = None  # TodosUpdated size
    percent: float | None = None  # DownloadProgress

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(asdict(self), default=str)
