from typing import Any

from app.services import ha_client


def _string_or_empty(raw: Any) -> str:
    return raw.strip() if isinstance(raw, str) else ""


def _find_row(rows: list[dict[str, Any]], key: str, value: str) -> dict[str, Any] | None:
    for row in rows:
        if isinstance(row, dict) and _string_or_empty(row.get(key)) == value:
            return row
    return None


def find_area_for_entity(
    entity_id: str,
    entity_rows: list[dict[str, Any]],
    device_rows: list[dict[str, Any]] | None,
) -> str:
    """Entity's own area wins; otherwise the area of its owning device.

    ``device_rows`` may be ``None`` when the device registry is unavailable.
    """
    entity_row = _find_row(entity_rows, "entity_id", entity_id)
    if entity_row is None:
        return ""

    area_id = _string_or_empty(entity_row.get("area_id"))
    if area_id:
        return area_id

    device_id = _string_or_empty(entity_row.get("device_id"))
    if not device_id or not device_rows:
        return ""

    device_row = _find_row(device_rows, "id", device_id)
    if device_row is None:
        return ""
    return _string_or_empty(device_row.get("area_id"))


async def resolve_entity_area(entity_id: str) -> str:
    entity_result = await ha_client.fetch_entity_registry()
    if not entity_result.get("ok"):
        return ""
    entity_rows = entity_result.get("data") or []

    entity_row = _find_row(entity_rows, "entity_id", entity_id)
    if entity_row is None:
        return ""
    if _string_or_empty(entity_row.get("area_id")) or not _string_or_empty(entity_row.get("device_id")):
        return find_area_for_entity(entity_id, entity_rows, None)

    device_result = await ha_client.fetch_device_registry()
    if not device_result.get("ok"):
        return ""
    return find_area_for_entity(entity_id, entity_rows, device_result.get("data") or [])
