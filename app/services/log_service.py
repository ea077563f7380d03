import json
from datetime import datetime
from pathlib import Path
from typing import Any
from uuid import uuid4

from app.core import settings
from app.models.schemas import OperationLogItem


_DETAIL_MAX_CHARS = 4000


def _now_iso() -> str:
    return datetime.now().isoformat(timespec="seconds")


def _backup_path(index: int) -> Path:
    return settings.HA_LOG_PATH.with_name(f"{settings.HA_LOG_PATH.name}.{index}")


def _compress_detail(detail: Any) -> dict[str, Any]:
    if isinstance(detail, dict):
        data = detail
    else:
        data = {"value": detail}

    try:
        raw = json.dumps(data, ensure_ascii=False)
    except (TypeError, ValueError):
        raw = json.dumps({"value": str(data)}, ensure_ascii=False)

    if len(raw) <= _DETAIL_MAX_CHARS:
        parsed = json.loads(raw)
        return parsed if isinstance(parsed, dict) else {"value": parsed}

    return {
        "_truncated": True,
        "_size": len(raw),
        "preview": raw[:_DETAIL_MAX_CHARS],
    }


def _rotate_if_needed() -> None:
    path = settings.HA_LOG_PATH
    if not path.exists():
        return
    if path.stat().st_size < settings.HA_LOG_MAX_BYTES:
        return

    _backup_path(settings.HA_LOG_BACKUP_COUNT).unlink(missing_ok=True)
    for idx in range(settings.HA_LOG_BACKUP_COUNT - 1, 0, -1):
        src = _backup_path(idx)
        if src.exists():
            src.replace(_backup_path(idx + 1))
    path.replace(_backup_path(1))


def _write_entry(entry: OperationLogItem) -> None:
    line = json.dumps(entry.model_dump(mode="json"), ensure_ascii=False)
    with settings.log_lock:
        settings.HA_LOG_PATH.parent.mkdir(parents=True, exist_ok=True)
        _rotate_if_needed()
        with settings.HA_LOG_PATH.open("a", encoding="utf-8") as f:
            f.write(line)
            f.write("\n")


def log_operation(
    *,
    event_type: str,
    source: str,
    action: str,
    method: str | None = None,
    path: str | None = None,
    status_code: int | None = None,
    duration_ms: float | None = None,
    client_ip: str | None = None,
    trace_id: str | None = None,
    success: bool | None = None,
    detail: Any = None,
) -> OperationLogItem:
    item = OperationLogItem(
        event_id=uuid4().hex,
        created_at=_now_iso(),
        event_type=event_type,
        source=source,
        action=action,
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        client_ip=client_ip,
        trace_id=trace_id,
        success=success,
        detail=_compress_detail(detail or {}),
    )
    try:
        _write_entry(item)
    except OSError:
        # A broken log sink must not fail the request being logged.
        pass
    return item


def log_http_request(
    *,
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    client_ip: str | None,
    detail: dict[str, Any] | None = None,
) -> OperationLogItem:
    return log_operation(
        event_type="http_request",
        source="api",
        action="http.request",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=duration_ms,
        client_ip=client_ip,
        success=status_code < 400,
        detail=detail or {},
    )


def _log_files() -> list[Path]:
    # Newest file first: the live log, then backups in rotation order.
    candidates = [settings.HA_LOG_PATH]
    candidates.extend(_backup_path(idx) for idx in range(1, settings.HA_LOG_BACKUP_COUNT + 1))
    return [p for p in candidates if p.exists()]


def _read_newest_first(path: Path) -> list[OperationLogItem]:
    try:
        lines = path.read_text(encoding="utf-8").splitlines()
    except OSError:
        return []

    items: list[OperationLogItem] = []
    for line in reversed(lines):
        if not line.strip():
            continue
        try:
            items.append(OperationLogItem.model_validate(json.loads(line)))
        except ValueError:
            continue
    return items


def list_recent_logs(
    *,
    limit: int = 200,
    event_type: str | None = None,
    trace_id: str | None = None,
) -> list[OperationLogItem]:
    """Newest entries first, optionally narrowed to one event type or one traced request."""
    safe_limit = max(1, min(limit, 1000))
    result: list[OperationLogItem] = []
    with settings.log_lock:
        for path in _log_files():
            for item in _read_newest_first(path):
                if event_type and item.event_type != event_type:
                    continue
                if trace_id and item.trace_id != trace_id:
                    continue
                result.append(item)
                if len(result) >= safe_limit:
                    return result
    return result
