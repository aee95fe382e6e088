from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any, Iterable

from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel

from app.core.logging import get_audit_logger


def serialize_for_audit(value: Any) -> Any:
    return jsonable_encoder(
        value,
        custom_encoder={
            Decimal: lambda v: str(v),
            datetime: lambda v: v.isoformat(),
            date: lambda v: v.isoformat(),
        },
    )


def entity_snapshot(entity: BaseModel | None, *, exclude: Iterable[str] | None = None) -> dict[str, Any]:
    if entity is None:
        return {}
    excluded = set(exclude or [])
    data = {name: getattr(entity, name) for name in type(entity).model_fields if name not in excluded}
    return serialize_for_audit(data)


def _diff_values(old: Any, new: Any, prefix: str = "") -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    if isinstance(old, dict) and isinstance(new, dict):
        keys = set(old.keys()) | set(new.keys())
        for key in sorted(keys, key=str):
            path = f"{prefix}.{key}" if prefix else str(key)
            changes.update(_diff_values(old.get(key), new.get(key), path))
        return changes
    if old != new:
        changes[prefix or "value"] = {"from": old, "to": new}
    return changes


def _build_summary(action: str, changes: dict[str, dict[str, Any]] | None) -> str:
    if not changes:
        return action
    keys = list(changes.keys())
    snippet = ", ".join(keys[:3])
    suffix = "..." if len(keys) > 3 else ""
    return f"{action}: {snippet}{suffix}"


def record_audit(
    *,
    actor_id: str | None,
    action: str,
    resource_type: str,
    resource_id: str,
    old_value: Any | None = None,
    new_value: Any | None = None,
) -> dict[str, Any]:
    """Write one structured record to the audit stream and return it."""
    serialized_old = serialize_for_audit(old_value) if old_value is not None else None
    serialized_new = serialize_for_audit(new_value) if new_value is not None else None
    changes = None
    if serialized_old is not None or serialized_new is not None:
        # Nested JSON documents are reported under their top-level field.
        changes = _collapse(_diff_values(serialized_old or {}, serialized_new or {})) or None
    summary = _build_summary(action, changes)
    entry = {
        "actor_id": actor_id,
        "action": action,
        "resource_type": resource_type,
        "resource_id": resource_id,
        "changed_fields": sorted(changes) if changes else [],
        "summary": summary,
    }
    get_audit_logger().info(summary, extra={"audit": entry})
    return entry


def _collapse(changes: dict[str, dict[str, Any]]) -> dict[str, dict[str, Any]]:
    collapsed: dict[str, dict[str, Any]] = {}
    for path, change in changes.items():
        head = path.split(".", 1)[0]
        collapsed.setdefault(head, change)
    return collapsed
