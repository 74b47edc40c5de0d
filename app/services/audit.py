from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from typing import Any

from fastapi.encoders import jsonable_encoder

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


def _diff_values(old: Any, new: Any, prefix: str = "") -> dict[str, dict[str, Any]]:
    changes: dict[str, dict[str, Any]] = {}
    if isinstance(old, dict) and isinstance(new, dict):
        for key in set(old.keys()) | set(new.keys()):
            path = f"{prefix}.{key}" if prefix else str(key)
            changes.update(_diff_values(old.get(key), new.get(key), path))
        return changes
    if old != new:
        changes[prefix or "value"] = {"from": old, "to": new}
    return changes


def record_audit_event(
    action: str,
    *,
    actor_id,
    resource_type: str,
    resource_id,
    old_value: Any | None = None,
    new_value: Any | None = None,
) -> dict[str, Any]:
    """Emit one structured entry on the ``app.audit`` stream and return it."""
    serialized_old = serialize_for_audit(old_value) if old_value is not None else None
    serialized_new = serialize_for_audit(new_value) if new_value is not None else None
    changes = None
    if serialized_old is not None or serialized_new is not None:
        changes = _diff_values(serialized_old or {}, serialized_new or {}) or None
    entry = {
        "action": action,
        "actor_id": str(actor_id) if actor_id is not None else None,
        "resource_type": resource_type,
        "resource_id": str(resource_id),
        "changes": changes,
    }
    get_audit_logger().info(action, extra={"audit": entry})
    return entry
