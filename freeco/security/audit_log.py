"""Audit trail for moderation actions.

Every transition applied by the moderation engine is appended as one JSON
line to a daily file under ``~/.freeco/audit_logs/``. The entity itself only
keeps the last ``moderated_by``/``moderated_at`` stamp; this log keeps the
history.
"""

from __future__ import annotations

import csv
import io
import json
import logging
import threading
import uuid
from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional

logger = logging.getLogger(__name__)


@dataclass
class AuditEntry:
    """One moderation action as seen by the audit trail."""

    id: str
    timestamp: str
    actor: str
    actor_role: str
    action: str
    family: str
    entity_ids: list[str] = field(default_factory=list)
    matched_count: int = 0
    details: dict[str, Any] = field(default_factory=dict)
    success: bool = True


class AuditLogger:
    """File-based JSON-lines audit logger."""

    def __init__(self, base_dir: Optional[str | Path] = None) -> None:
        self._base_dir = Path(base_dir) if base_dir else Path.home() / ".freeco" / "audit_logs"
        self._base_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _log_file_for_date(self, dt: datetime) -> Path:
        return self._base_dir / f"{dt.strftime('%Y-%m-%d')}.jsonl"

    def _read_all_entries(self) -> list[AuditEntry]:
        entries: list[AuditEntry] = []
        for path in sorted(self._base_dir.glob("*.jsonl")):
            try:
                text = path.read_text(encoding="utf-8")
            except OSError as exc:
                logger.warning("Skipping unreadable audit file %s: %s", path, exc)
                continue
            for line in text.splitlines():
                if not line.strip():
                    continue
                try:
                    entries.append(AuditEntry(**json.loads(line)))
                except (json.JSONDecodeError, TypeError):
                    logger.warning("Skipping malformed audit line in %s", path)
        return entries

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def log_event(
        self,
        actor: str,
        actor_role: str,
        action: str,
        family: str,
        entity_ids: list[str],
        matched_count: int,
        details: Optional[dict[str, Any]] = None,
        success: bool = True,
    ) -> AuditEntry:
        """Record a moderation action and return the created entry."""
        now = datetime.now(timezone.utc)
        entry = AuditEntry(
            id=uuid.uuid4().hex[:16],
            timestamp=now.isoformat(),
            actor=actor,
            actor_role=actor_role,
            action=action,
            family=family,
            entity_ids=list(entity_ids),
            matched_count=matched_count,
            details=details or {},
            success=success,
        )
        with self._lock, self._log_file_for_date(now).open("a", encoding="utf-8") as fh:
            fh.write(json.dumps(asdict(entry)) + "\n")
        return entry

    def get_events(
        self,
        *,
        actor: Optional[str] = None,
        action: Optional[str] = None,
        family: Optional[str] = None,
        entity_id: Optional[str] = None,
        limit: int = 200,
    ) -> list[AuditEntry]:
        """Return filtered audit events, newest first."""
        entries = self._read_all_entries()

        if actor:
            entries = [e for e in entries if e.actor == actor]
        if action:
            entries = [e for e in entries if e.action == action]
        if family:
            entries = [e for e in entries if e.family == family]
        if entity_id:
            entries = [e for e in entries if entity_id in e.entity_ids]

        entries.sort(key=lambda e: e.timestamp, reverse=True)
        return entries[:limit]

    def export_events(self, fmt: str = "json", **filters: Any) -> str:
        """Export audit events as ``json`` or ``csv``."""
        entries = self.get_events(**filters)

        if fmt == "csv":
            buf = io.StringIO()
            writer = csv.writer(buf)
            writer.writerow(
                ["id", "timestamp", "actor", "actor_role", "action", "family", "entity_ids", "matched_count", "success"]
            )
            for e in entries:
                writer.writerow(
                    [e.id, e.timestamp, e.actor, e.actor_role, e.action, e.family,
                     " ".join(e.entity_ids), e.matched_count, e.success]
                )
            return buf.getvalue()

        return json.dumps([asdict(e) for e in entries], indent=2)
