from typing import Any

from app.core.config_tree import TARGET_KEY, collect_areas, collect_devices, collect_services, first_entity_id
from app.models.schemas import DependencyCategories, DependencyEntry


# Only these keys lead to nested steps whose entity_id fields are real dependencies.
RECURSIVE_KEYS = frozenset({"data", "choose", "sequence", "conditions", "then", "else", "default"})
TARGET_DEPENDENCY_TYPE = "target"
TARGET_DESCRIPTION = "Action target"


def infer_dependency_type(mapping: dict[str, Any]) -> str:
    trigger = mapping.get("trigger")
    if isinstance(trigger, str):
        return trigger
    platform = mapping.get("platform")
    if isinstance(platform, str):
        return platform
    if "condition" in mapping:
        return "condition"
    if isinstance(mapping.get("action"), str):
        return "action"
    if isinstance(mapping.get("service"), str):
        return "service_call"
    return ""


def _format_value(raw: Any) -> str:
    if isinstance(raw, float) and raw.is_integer():
        return str(int(raw))
    return str(raw)


def _text(mapping: dict[str, Any], key: str) -> str:
    value = mapping.get(key)
    return value if isinstance(value, str) else ""


def describe_dependency(mapping: dict[str, Any], dep_type: str) -> str:
    if dep_type == "state":
        to_state = _text(mapping, "to")
        from_state = _text(mapping, "from")
        if from_state and to_state:
            return f"State change from '{from_state}' to '{to_state}'"
        if to_state:
            return f"State changes to '{to_state}'"
        return "State trigger"

    if dep_type == "numeric_state":
        # A null bound counts as absent.
        if mapping.get("above") is not None:
            return f"Numeric state above {_format_value(mapping['above'])}"
        if mapping.get("below") is not None:
            return f"Numeric state below {_format_value(mapping['below'])}"
        return "Numeric state trigger"

    if dep_type == "time":
        at = _text(mapping, "at")
        return f"At time {at}" if at else "Time trigger"

    if dep_type == "condition":
        kind = _text(mapping, "condition")
        return f"{kind} condition" if kind else "Condition"

    return ""


def _add_direct_dependency(mapping: dict[str, Any], seen: dict[str, DependencyEntry]) -> None:
    entity_id = first_entity_id(mapping)
    if not entity_id or entity_id in seen:
        return
    dep_type = infer_dependency_type(mapping)
    seen[entity_id] = DependencyEntry(
        entity_id=entity_id,
        type=dep_type or None,
        description=describe_dependency(mapping, dep_type) or None,
    )


def _add_target_dependency(mapping: dict[str, Any], seen: dict[str, DependencyEntry]) -> None:
    entity_id = first_entity_id(mapping.get(TARGET_KEY))
    if not entity_id or entity_id in seen:
        return
    seen[entity_id] = DependencyEntry(
        entity_id=entity_id,
        type=TARGET_DEPENDENCY_TYPE,
        description=TARGET_DESCRIPTION,
    )


def _collect_dependencies(value: Any, seen: dict[str, DependencyEntry]) -> None:
    if isinstance(value, list):
        for item in value:
            _collect_dependencies(item, seen)
        return
    if not isinstance(value, dict):
        return

    _add_direct_dependency(value, seen)
    _add_target_dependency(value, seen)
    for key, sub in value.items():
        if key in RECURSIVE_KEYS:
            _collect_dependencies(sub, seen)


def extract_dependencies(items: Any) -> list[DependencyEntry]:
    """Entities referenced by a trigger/condition/action list, sorted by entity id.

    The first occurrence of an entity decides its type and description.
    """
    if not isinstance(items, list):
        return []
    seen: dict[str, DependencyEntry] = {}
    for item in items:
        _collect_dependencies(item, seen)
    return [seen[entity_id] for entity_id in sorted(seen)]


def build_automation_categories(config: dict[str, Any]) -> DependencyCategories:
    actions = config.get("actions")
    variables = config.get("variables")
    return DependencyCategories(
        triggers=extract_dependencies(config.get("triggers")),
        conditions=extract_dependencies(config.get("conditions")),
        actions=extract_dependencies(actions),
        variables=sorted({str(key) for key in variables}) if isinstance(variables, dict) else [],
        areas=collect_areas(actions),
        devices=collect_devices(actions),
        services=collect_services(actions),
    )


def build_script_categories(sequence: Any) -> DependencyCategories:
    if not isinstance(sequence, list):
        return DependencyCategories()
    return DependencyCategories(
        actions=extract_dependencies(sequence),
        areas=collect_areas(sequence),
        devices=collect_devices(sequence),
        services=collect_services(sequence),
    )
