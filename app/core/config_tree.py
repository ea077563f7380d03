from __future__ import annotations

from typing import Any, Iterable


# Automation/script configs arrive as plain JSON values:
# str | int | float | bool | None | list[value] | dict[str, value].
ENTITY_ID_KEY = "entity_id"
AREA_ID_KEY = "area_id"
DEVICE_ID_KEY = "device_id"
TARGET_KEY = "target"
SERVICE_KEYS = ("service", "action")


def _field_matches(field: Any, literal: str) -> bool:
    if isinstance(field, str):
        return field == literal
    if isinstance(field, list):
        return any(isinstance(item, str) and item == literal for item in field)
    return False


def contains_value(value: Any, literal: str, *, key: str) -> bool:
    if isinstance(value, str):
        return value == literal
    if isinstance(value, list):
        return any(contains_value(item, literal, key=key) for item in value)
    if isinstance(value, dict):
        if _field_matches(value.get(key), literal):
            return True
        target = value.get(TARGET_KEY)
        if isinstance(target, dict) and _field_matches(target.get(key), literal):
            return True
        return any(contains_value(sub, literal, key=key) for sub in value.values())
    return False


def contains_entity(value: Any, entity_id: str) -> bool:
    return contains_value(value, entity_id, key=ENTITY_ID_KEY)


def contains_area(value: Any, area_id: str) -> bool:
    return contains_value(value, area_id, key=AREA_ID_KEY)


def entity_in_items(items: Any, entity_id: str) -> bool:
    if not isinstance(items, list):
        return False
    return any(contains_entity(item, entity_id) for item in items)


def area_in_items(items: Any, area_id: str) -> bool:
    if not isinstance(items, list):
        return False
    return any(contains_area(item, area_id) for item in items)


def _string_members(field: Any, *, allow_lists: bool) -> list[str]:
    if isinstance(field, str):
        return [field] if field.strip() else []
    if allow_lists and isinstance(field, list):
        return [item for item in field if isinstance(item, str) and item.strip()]
    return []


def _walk_fields(value: Any, keys: tuple[str, ...], found: set[str], *, allow_lists: bool) -> None:
    if isinstance(value, list):
        for item in value:
            _walk_fields(item, keys, found, allow_lists=allow_lists)
        return
    if not isinstance(value, dict):
        return

    for key in keys:
        found.update(_string_members(value.get(key), allow_lists=allow_lists))
    # target.<key> is reached by the unconditional descent below.
    for sub in value.values():
        _walk_fields(sub, keys, found, allow_lists=allow_lists)


def collect_field_values(items: Any, keys: Iterable[str], *, allow_lists: bool = True) -> list[str]:
    """Collect every string stored under any of ``keys`` anywhere in ``items``.

    Lists and dicts are descended without restriction. A field holding a list
    contributes all of its string members. The result is deduplicated and
    sorted so callers get a stable order regardless of dict iteration.
    """
    if not isinstance(items, list):
        return []
    found: set[str] = set()
    key_tuple = tuple(keys)
    for item in items:
        _walk_fields(item, key_tuple, found, allow_lists=allow_lists)
    return sorted(found)


def collect_services(items: Any) -> list[str]:
    return collect_field_values(items, SERVICE_KEYS, allow_lists=False)


def collect_areas(items: Any) -> list[str]:
    return collect_field_values(items, (AREA_ID_KEY,))


def collect_devices(items: Any) -> list[str]:
    return collect_field_values(items, (DEVICE_ID_KEY,))


def first_entity_id(mapping: Any) -> str:
    if not isinstance(mapping, dict):
        return ""
    raw = mapping.get(ENTITY_ID_KEY)
    if isinstance(raw, str):
        return raw
    if isinstance(raw, list) and raw and isinstance(raw[0], str):
        return raw[0]
    return ""


def string_list(raw: Any) -> list[str]:
    if not isinstance(raw, list):
        return []
    return [item for item in raw if isinstance(item, str)]
