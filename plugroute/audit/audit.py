"""Audit logging for routing decisions and tool authorization."""

import json
import logging
import threading
from dataclasses import dataclass, field, asdict
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Optional

logger = logging.getLogger(__name__)


class AuditAction(str, Enum):
    """Types of auditable actions."""
    REGISTRY_LOAD = "registry_load"
    REGISTRY_RELOAD = "registry_reload"
    ROUTE = "route"
    AUTHORIZE = "authorize"


@dataclass
class AuditEntry:
    """A single audit log entry."""
    timestamp: str
    action: str
    definition_id: Optional[str] = None
    details: dict = field(default_factory=dict)
    success: bool = True
    error: Optional[str] = None
    error_code: Optional[str] = None

    def to_dict(self) -> dict:
        return {k: v for k, v in asdict(self).items() if v is not None}

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


class AuditLog:
    """Keeps recent routing events in memory and optionally appends them to a JSONL file."""

    def __init__(self, log_path: Optional[Path] = None, enabled: bool = True, max_memory_entries: int = 1000):
        self.enabled = enabled
        self.log_path = log_path
        self._entries: list[AuditEntry] = []
        self._max_memory_entries = max_memory_entries
        self._lock = threading.Lock()

        if self.log_path:
            self.log_path.parent.mkdir(parents=True, exist_ok=True)

    def log(
        self,
        action: AuditAction,
        definition_id: Optional[str] = None,
        details: Optional[dict] = None,
        success: bool = True,
        error: Optional[str] = None,
        error_code: Optional[str] = None,
    ) -> AuditEntry:
        """Log an audit entry."""
        entry = AuditEntry(
            timestamp=datetime.now().isoformat(),
            action=action.value,
            definition_id=definition_id,
            details=details or {},
            success=success,
            error=error,
            error_code=error_code,
        )

        if not self.enabled:
            return entry

        with self._lock:
            self._entries.append(entry)
            if len(self._entries) > self._max_memory_entries:
                self._entries = self._entries[-self._max_memory_entries:]

            if self.log_path:
                try:
                    with open(self.log_path, "a", encoding="utf-8") as f:
                        f.write(entry.to_json() + "\n")
                except OSError as e:
                    logger.warning(f"Failed to write audit log: {e}")

        return entry

    def log_route(
        self,
        intent: str,
        definition_id: Optional[str] = None,
        score: Optional[float] = None,
        candidates: int = 0,
        error: Optional[str] = None,
        error_code: Optional[str] = None,
    ) -> AuditEntry:
        """Log a routing decision (or failure)."""
        details = {"intent": intent[:200], "candidates": candidates}
        if score is not None:
            details["score"] = round(score, 4)
        return self.log(
            action=AuditAction.ROUTE,
            definition_id=definition_id,
            details=details,
            success=error is None,
            error=error,
            error_code=error_code,
        )

    def log_authorization(
        self,
        definition_id: str,
        requested_tools: list[str],
        missing_tools: list[str],
    ) -> AuditEntry:
        """Log an access guard decision."""
        return self.log(
            action=AuditAction.AUTHORIZE,
            definition_id=definition_id,
            details={"requested": sorted(requested_tools), "missing": sorted(missing_tools)},
            success=not missing_tools,
            error_code="FORBIDDEN_TOOL" if missing_tools else None,
        )

    def get_recent(self, count: int = 50, action: Optional[AuditAction] = None) -> list[AuditEntry]:
        """Get recent audit entries from memory."""
        with self._lock:
            entries = list(self._entries)
        if action:
            entries = [e for e in entries if e.action == action.value]
        return entries[-count:]

    def clear_memory(self):
        """Clear in-memory entries (file remains)."""
        with self._lock:
            self._entries = []

    def get_stats(self) -> dict:
        """Get statistics about logged actions."""
        with self._lock:
            entries = list(self._entries)

        stats = {
            "total_entries": len(entries),
            "successful": sum(1 for e in entries if e.success),
            "failed": sum(1 for e in entries if not e.success),
            "by_action": {},
            "by_definition": {},
        }

        for entry in entries:
            stats["by_action"][entry.action] = stats["by_action"].get(entry.action, 0) + 1
            if entry.definition_id and entry.action == AuditAction.ROUTE.value:
                stats["by_definition"][entry.definition_id] = stats["by_definition"].get(entry.definition_id, 0) + 1

        return stats
