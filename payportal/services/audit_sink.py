"""Append-only, HMAC-signed audit sink.

Each record becomes one JSON line ``{"seq", "payload", "signature"}`` where
``payload`` is the serialized event with its timestamp and ``signature`` is the
hex HMAC-SHA256 of ``payload``. Sequence numbers come from a companion
``<path>.seq`` counter file and never go backwards within a process.

Lines that cannot be written are held in memory and flushed ahead of the next
successful write. The buffer is process-local and lost on restart.
"""

from __future__ import annotations

import hashlib
import hmac
import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime
from pathlib import Path
from typing import Any, TextIO

from payportal.core.config import settings
from payportal.utils.time import utcnow

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AuditEntry:
    seq: int
    payload: str
    signature: str | None
    persisted: bool


@dataclass(frozen=True)
class AuditIssue:
    line_number: int
    problem: str


def sign_payload(payload: str, key: bytes | None) -> str | None:
    if not key:
        return None
    return hmac.new(key, payload.encode("utf-8"), hashlib.sha256).hexdigest()


def _decode_key(key_hex: str) -> bytes | None:
    key_hex = key_hex.strip()
    if not key_hex:
        return None
    try:
        return bytes.fromhex(key_hex)
    except ValueError:
        logger.error("[AUDIT] AUDIT_SIGN_KEY is not valid hex; records will be unsigned.")
        return None


class AuditSink:
    """File-backed audit sink with best-effort buffering."""

    def __init__(self, path: str | Path, sign_key_hex: str = "") -> None:
        self.path = Path(path)
        self.seq_path = self.path.with_name(self.path.name + ".seq")
        self._key = _decode_key(sign_key_hex)
        self._pending: list[str] = []
        self._last_seq = 0
        self._lock = threading.Lock()
        if self._key is None:
            logger.warning("[AUDIT] No signing key configured; audit sink running unsigned (degraded).")

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def record(self, event: dict[str, Any], now: datetime | None = None) -> AuditEntry:
        """Serialize, sign, number and append ``event``. Never raises on I/O."""
        payload = json.dumps(
            {"ts": (now or utcnow()).isoformat(), "audit": event},
            sort_keys=True,
            default=str,
        )
        signature = sign_payload(payload, self._key)
        with self._lock:
            seq = self._next_seq()
            line = json.dumps({"seq": seq, "payload": payload, "signature": signature}) + "\n"
            self._pending.append(line)
            persisted = self._flush_locked()
        return AuditEntry(seq=seq, payload=payload, signature=signature, persisted=persisted)

    def flush(self) -> bool:
        with self._lock:
            if not self._pending:
                return True
            return self._flush_locked()

    def _open_for_append(self) -> TextIO:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        return self.path.open("a", encoding="utf-8")

    def _flush_locked(self) -> bool:
        # Lines leave the buffer one at a time so a partial write is never replayed.
        try:
            with self._open_for_append() as handle:
                while self._pending:
                    handle.write(self._pending[0])
                    handle.flush()
                    self._pending.pop(0)
        except OSError:
            logger.exception("[AUDIT] Failed to write audit sink; %d line(s) buffered", len(self._pending))
            return False
        return True

    def _next_seq(self) -> int:
        seq = self._last_seq + 1
        try:
            if self.seq_path.exists():
                stored = int(self.seq_path.read_text(encoding="utf-8").strip() or "1")
                seq = max(seq, stored)
            self.seq_path.parent.mkdir(parents=True, exist_ok=True)
            self.seq_path.write_text(str(seq + 1), encoding="utf-8")
        except (OSError, ValueError):
            logger.warning("[AUDIT] Sequence counter unavailable; using in-process sequence %d", seq)
        self._last_seq = seq
        return seq


def verify_audit_file(path: str | Path, sign_key_hex: str) -> list[AuditIssue]:
    """Check signatures and sequence ordering of an audit sink file."""
    key = _decode_key(sign_key_hex)
    issues: list[AuditIssue] = []
    previous_seq = 0
    with Path(path).open(encoding="utf-8") as handle:
        for line_number, raw in enumerate(handle, start=1):
            if not raw.strip():
                continue
            try:
                entry = json.loads(raw)
                seq = int(entry["seq"])
                payload = entry["payload"]
            except (ValueError, KeyError, TypeError):
                issues.append(AuditIssue(line_number, "unparseable line"))
                continue
            if seq <= previous_seq:
                issues.append(AuditIssue(line_number, f"sequence {seq} does not follow {previous_seq}"))
            previous_seq = max(previous_seq, seq)
            if key is None:
                continue
            expected = sign_payload(payload, key)
            signature = entry.get("signature")
            if not signature:
                issues.append(AuditIssue(line_number, "unsigned record"))
            elif not hmac.compare_digest(expected, signature):
                issues.append(AuditIssue(line_number, "signature mismatch"))
    return issues


default_sink: AuditSink = AuditSink(settings.audit_sink_path, settings.audit_sign_key)
