import asyncio
import json
from datetime import datetime
from time import perf_counter
from typing import Any
from urllib.parse import quote, urlparse

import httpx
import websockets

from app.core import settings
from app.services.log_service import log_operation


AUTOMATION_PREFIX = "automation."
SCRIPT_PREFIX = "script."
SCENE_PREFIX = "scene."
GROUP_PREFIX = "group."


class HAWebsocketError(RuntimeError):
    pass


def _auth_headers() -> dict[str, str]:
    return {
        "Authorization": f"Bearer {settings.HA_TOKEN}",
        "Content-Type": "application/json",
    }


def _log_ha_request(
    *,
    method: str,
    path: str,
    context: str,
    started: float,
    status_code: int,
    success: bool,
    extra: dict[str, Any] | None = None,
    message: str | None = None,
) -> None:
    detail: dict[str, Any] = {
        "context": context,
        "request": {
            "base_url": settings.HA_BASE_URL,
            "path": path,
        },
    }
    if extra:
        detail.update(extra)
    if message:
        detail["message"] = message
    log_operation(
        event_type="ha_request",
        source="system",
        action="ha.request",
        method=method,
        path=path,
        status_code=status_code,
        duration_ms=round((perf_counter() - started) * 1000, 2),
        success=success,
        detail=detail,
    )


async def _ha_rest_get(
    ha_path: str,
    *,
    context: str,
    params: dict[str, Any] | None = None,
    extra: dict[str, Any] | None = None,
    timeout: float | None = None,
) -> dict[str, Any]:
    if not settings.HA_TOKEN:
        return {"ok": False, "error": "HA token missing", "data": None}

    started = perf_counter()
    try:
        async with httpx.AsyncClient(timeout=timeout or settings.HA_CONTEXT_TIMEOUT_SEC) as client:
            resp = await client.get(f"{settings.HA_BASE_URL}{ha_path}", headers=_auth_headers(), params=params)
        _log_ha_request(
            method="GET",
            path=ha_path,
            context=context,
            started=started,
            status_code=resp.status_code,
            success=resp.status_code < 400,
            extra=extra,
        )
        if resp.status_code == 404:
            return {"ok": False, "status_code": 404, "error": "not found", "data": None}
        resp.raise_for_status()
        return {"ok": True, "data": resp.json() if resp.content else None}
    except (httpx.HTTPError, ValueError) as ex:
        _log_ha_request(
            method="GET",
            path=ha_path,
            context=context,
            started=started,
            status_code=0,
            success=False,
            extra=extra,
            message=str(ex),
        )
        return {"ok": False, "error": f"{context} failed: {ex}", "data": None}


def _ha_websocket_url(base_url: str) -> str:
    parsed = urlparse((base_url or "").strip().rstrip("/"))
    scheme = "wss" if parsed.scheme == "https" else "ws"
    netloc = parsed.netloc or parsed.path
    return f"{scheme}://{netloc}/api/websocket"


async def _ha_ws_send_command(ws: Any, request_id: int, payload: dict[str, Any]) -> dict[str, Any]:
    message = dict(payload)
    message["id"] = request_id
    await ws.send(json.dumps(message, ensure_ascii=False))
    while True:
        raw = await ws.recv()
        data = json.loads(raw)
        if data.get("type") == "event":
            continue
        if data.get("id") == request_id:
            return data


async def _ha_ws_exchange(payload: dict[str, Any]) -> Any:
    async with websockets.connect(
        _ha_websocket_url(settings.HA_BASE_URL),
        open_timeout=settings.HA_CONTEXT_TIMEOUT_SEC,
        close_timeout=5,
        max_size=settings.HA_WS_MAX_SIZE,
    ) as ws:
        first = json.loads(await ws.recv())
        if first.get("type") != "auth_required":
            raise HAWebsocketError(f"unexpected websocket handshake: {first.get('type')}")

        await ws.send(json.dumps({"type": "auth", "access_token": settings.HA_TOKEN}, ensure_ascii=False))
        second = json.loads(await ws.recv())
        if second.get("type") != "auth_ok":
            raise HAWebsocketError(f"websocket auth failed: {second.get('message') or second.get('type')}")

        response = await _ha_ws_send_command(ws, 1, payload)
        if not response.get("success", False):
            error = response.get("error") if isinstance(response.get("error"), dict) else {}
            raise HAWebsocketError(str(error.get("message") or error.get("code") or "command failed"))
        return response.get("result")


async def _ha_ws_command(payload: dict[str, Any], *, context: str) -> dict[str, Any]:
    if not settings.HA_TOKEN:
        return {"ok": False, "error": "HA token missing", "data": None}

    ws_path = f"ws:{payload.get('type')}"
    started = perf_counter()
    try:
        result = await asyncio.wait_for(_ha_ws_exchange(payload), timeout=settings.HA_CONTEXT_TIMEOUT_SEC)
    except (OSError, ValueError, asyncio.TimeoutError, websockets.WebSocketException, HAWebsocketError) as ex:
        message = str(ex) or type(ex).__name__
        _log_ha_request(
            method="WS",
            path=ws_path,
            context=context,
            started=started,
            status_code=0,
            success=False,
            message=message,
        )
        return {"ok": False, "error": f"{context} failed: {message}", "data": None}

    _log_ha_request(method="WS", path=ws_path, context=context, started=started, status_code=200, success=True)
    return {"ok": True, "data": result}


def _string_attr(attributes: Any, name: str) -> str:
    if not isinstance(attributes, dict):
        return ""
    value = attributes.get(name)
    return value if isinstance(value, str) else ""


def _as_item_list(raw: Any) -> list[Any]:
    if raw is None:
        return []
    if isinstance(raw, list):
        return raw
    return [raw]


def normalize_automation_config(raw: Any) -> dict[str, Any] | None:
    if not isinstance(raw, dict):
        return None
    # Older configs use the singular keys.
    variables = raw.get("variables")
    return {
        "alias": _string_attr(raw, "alias"),
        "triggers": _as_item_list(raw.get("triggers", raw.get("trigger"))),
        "conditions": _as_item_list(raw.get("conditions", raw.get("condition"))),
        "actions": _as_item_list(raw.get("actions", raw.get("action"))),
        "variables": variables if isinstance(variables, dict) else {},
    }


async def fetch_entity_state(entity_id: str) -> dict[str, Any]:
    result = await _ha_rest_get(
        f"/api/states/{quote(entity_id, safe='._')}",
        context="ha.entity.get",
        extra={"entity_id": entity_id},
        timeout=settings.HA_TIMEOUT_SEC,
    )
    if result.get("status_code") == 404:
        return {"ok": False, "error": f"entity not found: {entity_id}", "data": None}
    if not result.get("ok"):
        return result
    payload = result.get("data")
    if not isinstance(payload, dict):
        return {"ok": False, "error": "unexpected entity payload", "data": None}
    return {"ok": True, "data": payload}


async def fetch_states() -> dict[str, Any]:
    result = await _ha_rest_get("/api/states", context="ha.states")
    if not result.get("ok"):
        return {"ok": False, "error": result.get("error"), "data": []}
    payload = result.get("data")
    if not isinstance(payload, list):
        return {"ok": False, "error": "unexpected states payload", "data": []}
    return {"ok": True, "data": [row for row in payload if isinstance(row, dict)]}


async def _list_states_with_prefix(prefix: str, states: list[dict[str, Any]] | None) -> dict[str, Any]:
    # Callers that already hold a states snapshot pass it in to skip the extra GET.
    if states is None:
        result = await fetch_states()
        if not result.get("ok"):
            return result
        states = result["data"]
    rows = [row for row in states if isinstance(row, dict) and str(row.get("entity_id", "")).startswith(prefix)]
    return {"ok": True, "data": rows}


async def list_automations(states: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    result = await _list_states_with_prefix(AUTOMATION_PREFIX, states)
    if not result.get("ok"):
        return result
    automations: list[dict[str, Any]] = []
    for row in result["data"]:
        attributes = row.get("attributes")
        automations.append(
            {
                "entity_id": str(row.get("entity_id", "")),
                "state": str(row.get("state", "")),
                "friendly_name": _string_attr(attributes, "friendly_name"),
                "last_triggered": _string_attr(attributes, "last_triggered"),
            }
        )
    return {"ok": True, "data": automations}


async def fetch_automation_config(automation_id: str) -> dict[str, Any]:
    entity_id = automation_id if automation_id.startswith(AUTOMATION_PREFIX) else f"{AUTOMATION_PREFIX}{automation_id}"
    result = await _ha_ws_command({"type": "automation/config", "entity_id": entity_id}, context="ha.automation.config")
    if not result.get("ok"):
        return result
    payload = result.get("data")
    raw_config = payload.get("config") if isinstance(payload, dict) else None
    return {"ok": True, "data": normalize_automation_config(raw_config)}


async def list_scripts(states: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return await _list_states_with_prefix(SCRIPT_PREFIX, states)


async def list_scenes(states: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return await _list_states_with_prefix(SCENE_PREFIX, states)


async def _fetch_registry(command: str, *, context: str) -> dict[str, Any]:
    result = await _ha_ws_command({"type": command}, context=context)
    if not result.get("ok"):
        return {"ok": False, "error": result.get("error"), "data": []}
    rows = result.get("data")
    if not isinstance(rows, list):
        return {"ok": False, "error": f"unexpected {context} payload", "data": []}
    return {"ok": True, "data": [row for row in rows if isinstance(row, dict)]}


async def fetch_entity_registry() -> dict[str, Any]:
    return await _fetch_registry("config/entity_registry/list", context="ha.entity_registry")


async def fetch_device_registry() -> dict[str, Any]:
    return await _fetch_registry("config/device_registry/list", context="ha.device_registry")


async def fetch_entity_history(entity_id: str, start: datetime, end: datetime) -> dict[str, Any]:
    result = await _ha_rest_get(
        f"/api/history/period/{quote(start.isoformat(), safe='')}",
        context="ha.history",
        params={"filter_entity_id": entity_id, "end_time": end.isoformat()},
        extra={"entity_id": entity_id},
    )
    if not result.get("ok"):
        return {"ok": False, "error": result.get("error"), "data": []}
    payload = result.get("data")
    if not isinstance(payload, list):
        return {"ok": False, "error": "unexpected history payload", "data": []}
    # One inner list per requested entity.
    series = payload[0] if payload and isinstance(payload[0], list) else []
    return {"ok": True, "data": [row for row in series if isinstance(row, dict)]}
