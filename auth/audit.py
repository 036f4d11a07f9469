"""
auth/audit.py -- Append-only audit trail for security-relevant actions.

The request path only ever writes here. recent() exists for admin inspection
and tests; nothing in the auth flow reads entries back.

The audit_logs table lives in the same database as users and shares the
UserStore engine, so one DATABASE_URL covers both.

Layer rule: no imports from api/ or core/.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone

from sqlalchemy import Column, Integer, MetaData, String, Table, Text
from sqlalchemy.engine import Engine

from auth.models import AuditEntry

logger = logging.getLogger("speciesguard.auth.audit")

_metadata = MetaData()

_audit_logs = Table(
    "audit_logs",
    _metadata,
    Column("id", Integer, primary_key=True, autoincrement=True),
    Column("user_id", Integer),  # NULL for anonymous or failed attempts
    Column("action", String(64), nullable=False),
    Column("entity_type", String(32)),
    Column("entity_id", Integer),
    Column("ip_address", String(64), nullable=False),
    Column("user_agent", Text, nullable=False),
    Column("created_at", String(32), nullable=False),
)


class AuditLog:
    """Write-only sink for AuditEntry records."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine
        _metadata.create_all(self.engine)

    def record(self, entry: AuditEntry) -> int:
        """Append one entry and return its row ID. Storage errors propagate."""
        with self.engine.connect() as conn:
            result = conn.execute(
                _audit_logs.insert().values(
                    user_id=entry.user_id,
                    action=entry.action,
                    entity_type=entry.entity_type,
                    entity_id=entry.entity_id,
                    ip_address=entry.ip_address,
                    user_agent=entry.user_agent,
                    created_at=_now_iso(),
                )
            )
            conn.commit()
        logger.info("audit %s user_id=%s ip=%s", entry.action, entry.user_id, entry.ip_address)
        return result.inserted_primary_key[0]

    def recent(self, limit: int = 50) -> list[AuditEntry]:
        """Return the newest entries first."""
        with self.engine.connect() as conn:
            rows = conn.execute(
                _audit_logs.select().order_by(_audit_logs.c.id.desc()).limit(limit)
            ).fetchall()
        return [
            AuditEntry(
                id=r.id,
                user_id=r.user_id,
                action=r.action,
                entity_type=r.entity_type,
                entity_id=r.entity_id,
                ip_address=r.ip_address,
                user_agent=r.user_agent,
                created_at=r.created_at,
            )
            for r in rows
        ]


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def client_ip(request) -> str:
    """Best-effort source IP: first X-Forwarded-For hop, then X-Real-IP, then the peer."""
    forwarded = request.headers.get("x-forwarded-for", "")
    if forwarded:
        return forwarded.split(",")[0].strip() or "unknown"
    real_ip = request.headers.get("x-real-ip", "")
    if real_ip:
        return real_ip
    return request.client.host if request.client else "unknown"


def entry_for_request(request, action: str, user_id: int | None, entity_id: int | None = None) -> AuditEntry:
    """Build an AuditEntry about a user account, with source details taken from the request.

    entity_id defaults to the acting user (self-service actions).
    """
    return AuditEntry(
        action=action,
        user_id=user_id,
        entity_type="user",
        entity_id=entity_id if entity_id is not None else user_id,
        ip_address=client_ip(request),
        user_agent=request.headers.get("user-agent", "") or "unknown",
    )
