from __future__ import annotations

import os

from dataclasses import dataclass

from django.db import DatabaseError, connections
from django.db.migrations.executor import MigrationExecutor

from market.attributes.audit import dangling_references


def _env_truthy(name: str, default: bool = False) -> bool:
    raw = os.environ.get(name)
    if raw is None:
        return default
    return str(raw).strip().lower() in {"1", "true", "yes", "y", "on"}


@dataclass(frozen=True)
class HealthStatus:
    ok: bool
    payload: dict


def _check_db() -> HealthStatus:
    try:
        with connections["default"].cursor() as cursor:
            cursor.execute("SELECT 1")
            cursor.fetchone()
        return HealthStatus(ok=True, payload={"ok": True})
    except DatabaseError as exc:
        return HealthStatus(ok=False, payload={"ok": False, "error": str(exc)})


def _check_migrations() -> HealthStatus:
    # This can be moderately expensive on large projects; keep it opt-in.
    try:
        executor = MigrationExecutor(connections["default"])
        targets = executor.loader.graph.leaf_nodes()
        pending = len(executor.migration_plan(targets))
        return HealthStatus(ok=pending == 0, payload={"ok": pending == 0, "pending": pending})
    except DatabaseError as exc:
        return HealthStatus(ok=False, payload={"ok": False, "error": str(exc)})


def _check_attributes() -> HealthStatus:
    # Scans every conditional display rule; keep it opt-in.
    try:
        dangling = dangling_references()
    except DatabaseError as exc:
        return HealthStatus(ok=False, payload={"ok": False, "error": str(exc)})
    return HealthStatus(ok=not dangling, payload={"ok": not dangling, "dangling_conditions": len(dangling)})


def build_health_payload() -> tuple[dict, bool]:
    """Return (payload, overall_ok)."""

    db = _check_db()

    payload: dict = {"db": db.payload}
    overall_ok = db.ok

    if _env_truthy("HEALTH_CHECK_MIGRATIONS", default=False):
        migrations = _check_migrations()
        payload["migrations"] = migrations.payload
        overall_ok = overall_ok and migrations.ok
    else:
        payload["migrations"] = {"skipped": True}

    if _env_truthy("HEALTH_CHECK_ATTRIBUTES", default=False) and db.ok:
        attributes = _check_attributes()
        payload["attributes"] = attributes.payload
        overall_ok = overall_ok and attributes.ok
    else:
        payload["attributes"] = {"skipped": True}

    payload["status"] = "ok" if overall_ok else "degraded"

    return payload, overall_ok
