import asyncio
import json
from datetime import datetime, timedelta, timezone
from time import perf_counter
from typing import Any

from app.core import settings
from app.models.schemas import (
    AnalysisResponse,
    DependencyCategories,
    EntityAnalysis,
    EntityDependencies,
    EntityReferences,
    HistoryEntry,
)
from app.services import ha_client
from app.services.dependency_service import build_automation_categories, build_script_categories
from app.services.log_service import log_operation
from app.services.reference_service import (
    ReferenceScan,
    find_area_references,
    find_automation_references,
    find_group_references,
    find_scene_references,
    find_script_references,
)
from app.services.summary_service import build_dependency_summary, build_entity_summary


ENTITY_ID_REQUIRED = "entity_id is required"
DEPENDENCY_TARGET_INVALID = (
    "entity_id must be an automation or script (e.g., 'automation.my_automation' or 'script.my_script')"
)
AUTOMATION_CONFIG_UNAVAILABLE = "Automation configuration not available"

# Left out of the rendered document when empty. Counts, used_in and the
# dependencies block are always rendered.
ANALYSIS_OPTIONAL_FIELDS = ("attributes", "history")
REFERENCE_LISTS = ("automations", "scripts", "scenes", "groups", "area_references")
DEPENDENCY_LISTS = ("triggers", "conditions", "actions", "variables", "areas", "devices", "services")


class AnalysisError(Exception):
    def __init__(self, *, stage: str, message: str) -> None:
        self.stage = stage
        self.message = message
        super().__init__(f"{stage}: {message}")


def _string_attr(attributes: Any, name: str) -> str | None:
    if not isinstance(attributes, dict):
        return None
    value = attributes.get(name)
    return value if isinstance(value, str) and value else None


def entity_domain(entity_id: str) -> str:
    return entity_id.split(".", 1)[0]


async def fetch_recent_history(entity_id: str) -> list[HistoryEntry]:
    end = datetime.now(timezone.utc)
    start = end - timedelta(hours=settings.HA_HISTORY_WINDOW_HOURS)
    result = await ha_client.fetch_entity_history(entity_id, start, end)
    if not result.get("ok"):
        return []

    history: list[HistoryEntry] = []
    for row in (result.get("data") or [])[: settings.HA_HISTORY_MAX_ENTRIES]:
        history.append(
            HistoryEntry(
                state=str(row.get("state", "")),
                last_changed=str(row.get("last_changed") or row.get("last_updated") or ""),
            )
        )
    return history


async def build_entity_analysis(entity_id: str, include_history: bool) -> EntityAnalysis:
    state_result = await ha_client.fetch_entity_state(entity_id)
    if not state_result.get("ok"):
        raise AnalysisError(stage="error getting entity state", message=str(state_result.get("error")))

    state = state_result["data"]
    attributes = state.get("attributes") if isinstance(state.get("attributes"), dict) else {}
    analysis = EntityAnalysis(
        entity_id=entity_id,
        state=str(state.get("state", "")),
        friendly_name=_string_attr(attributes, "friendly_name"),
        domain=entity_domain(entity_id),
        attributes=attributes,
        last_changed=state.get("last_changed") if isinstance(state.get("last_changed"), str) else None,
    )

    scan = ReferenceScan()
    references = EntityReferences(
        automations=await find_automation_references(entity_id, scan),
        scripts=await find_script_references(entity_id, scan),
        scenes=await find_scene_references(entity_id, scan),
        groups=await find_group_references(entity_id, scan),
        area_references=await find_area_references(entity_id, scan),
    )
    references.total_references = references.count_total()
    analysis.references = references

    if include_history:
        analysis.history = await fetch_recent_history(entity_id)

    analysis.summary = build_entity_summary(analysis)
    return analysis


def validate_dependency_target(entity_id: str) -> str | None:
    if not entity_id:
        return ENTITY_ID_REQUIRED
    if not entity_id.startswith((ha_client.AUTOMATION_PREFIX, ha_client.SCRIPT_PREFIX)):
        return DEPENDENCY_TARGET_INVALID
    return None


async def _automation_dependencies(entity_id: str) -> EntityDependencies:
    result = await ha_client.fetch_automation_config(entity_id)
    if not result.get("ok"):
        raise AnalysisError(stage="Error getting dependencies", message=str(result.get("error")))

    config = result.get("data")
    if not isinstance(config, dict):
        return EntityDependencies(entity_id=entity_id, type="automation", summary=AUTOMATION_CONFIG_UNAVAILABLE)

    deps = EntityDependencies(
        entity_id=entity_id,
        friendly_name=config.get("alias") or None,
        type="automation",
        dependencies=build_automation_categories(config),
    )
    deps.summary = build_dependency_summary(deps)
    return deps


async def _script_dependencies(entity_id: str) -> EntityDependencies:
    # Scripts have no config command of their own here; the state carries the sequence.
    result = await ha_client.fetch_entity_state(entity_id)
    if not result.get("ok"):
        raise AnalysisError(stage="Error getting dependencies", message=str(result.get("error")))

    attributes = result["data"].get("attributes")
    sequence = attributes.get("sequence") if isinstance(attributes, dict) else None
    deps = EntityDependencies(
        entity_id=entity_id,
        friendly_name=_string_attr(attributes, "friendly_name"),
        type="script",
        dependencies=build_script_categories(sequence) if isinstance(sequence, list) else DependencyCategories(),
    )
    deps.summary = build_dependency_summary(deps)
    return deps


async def build_entity_dependencies(entity_id: str) -> EntityDependencies:
    error = validate_dependency_target(entity_id)
    if error:
        raise AnalysisError(stage="validation", message=error)
    if entity_id.startswith(ha_client.AUTOMATION_PREFIX):
        return await _automation_dependencies(entity_id)
    return await _script_dependencies(entity_id)


def _normalize_entity_id(raw: Any) -> str:
    return raw.strip() if isinstance(raw, str) else ""


def _drop_empty(data: dict[str, Any], keys: tuple[str, ...]) -> None:
    for key in keys:
        if key in data and not data[key]:
            del data[key]


def _render(model: EntityAnalysis | EntityDependencies) -> tuple[dict[str, Any], str]:
    data = model.model_dump(mode="json", exclude_none=True)
    if isinstance(model, EntityAnalysis):
        _drop_empty(data, ANALYSIS_OPTIONAL_FIELDS)
        _drop_empty(data["references"], REFERENCE_LISTS)
    else:
        _drop_empty(data["dependencies"], DEPENDENCY_LISTS)
    return data, json.dumps(data, ensure_ascii=False, indent=2)


def _log_analysis(
    *,
    action: str,
    entity_id: str,
    trace_id: str | None,
    started: float,
    success: bool,
    detail: dict[str, Any],
) -> None:
    log_operation(
        event_type="entity_analysis",
        source="api",
        action=action,
        trace_id=trace_id,
        success=success,
        duration_ms=round((perf_counter() - started) * 1000, 2),
        detail={"entity_id": entity_id, **detail},
    )


async def analyze_entity(
    entity_id: Any,
    include_history: bool = False,
    *,
    trace_id: str | None = None,
) -> AnalysisResponse:
    normalized = _normalize_entity_id(entity_id)
    if not normalized:
        return AnalysisResponse(success=False, message=ENTITY_ID_REQUIRED, trace_id=trace_id)
    # Only a literal True requests history.
    include_history = include_history is True

    started = perf_counter()
    try:
        analysis = await asyncio.wait_for(
            build_entity_analysis(normalized, include_history),
            timeout=settings.HA_ANALYSIS_TIMEOUT_SEC,
        )
    except AnalysisError as ex:
        message = str(ex)
        _log_analysis(
            action="analysis.entity",
            entity_id=normalized,
            trace_id=trace_id,
            started=started,
            success=False,
            detail={"message": message},
        )
        return AnalysisResponse(success=False, message=message, trace_id=trace_id)
    except asyncio.TimeoutError:
        message = f"entity analysis timed out after {settings.HA_ANALYSIS_TIMEOUT_SEC}s"
        _log_analysis(
            action="analysis.entity",
            entity_id=normalized,
            trace_id=trace_id,
            started=started,
            success=False,
            detail={"message": message},
        )
        return AnalysisResponse(success=False, message=message, trace_id=trace_id)

    try:
        data, document = _render(analysis)
    except (TypeError, ValueError) as ex:
        return AnalysisResponse(success=False, message=f"Error formatting analysis: {ex}", trace_id=trace_id)

    _log_analysis(
        action="analysis.entity",
        entity_id=normalized,
        trace_id=trace_id,
        started=started,
        success=True,
        detail={
            "include_history": include_history,
            "total_references": analysis.references.total_references,
        },
    )
    return AnalysisResponse(success=True, message=document, trace_id=trace_id, data=data)


async def get_entity_dependencies(entity_id: Any, *, trace_id: str | None = None) -> AnalysisResponse:
    normalized = _normalize_entity_id(entity_id)
    error = validate_dependency_target(normalized)
    if error:
        return AnalysisResponse(success=False, message=error, trace_id=trace_id)

    started = perf_counter()
    try:
        deps = await asyncio.wait_for(
            build_entity_dependencies(normalized),
            timeout=settings.HA_ANALYSIS_TIMEOUT_SEC,
        )
    except AnalysisError as ex:
        message = str(ex)
        _log_analysis(
            action="analysis.dependencies",
            entity_id=normalized,
            trace_id=trace_id,
            started=started,
            success=False,
            detail={"message": message},
        )
        return AnalysisResponse(success=False, message=message, trace_id=trace_id)
    except asyncio.TimeoutError:
        message = f"Error getting dependencies: timed out after {settings.HA_ANALYSIS_TIMEOUT_SEC}s"
        _log_analysis(
            action="analysis.dependencies",
            entity_id=normalized,
            trace_id=trace_id,
            started=started,
            success=False,
            detail={"message": message},
        )
        return AnalysisResponse(success=False, message=message, trace_id=trace_id)

    try:
        data, document = _render(deps)
    except (TypeError, ValueError) as ex:
        return AnalysisResponse(success=False, message=f"Error formatting dependencies: {ex}", trace_id=trace_id)

    _log_analysis(
        action="analysis.dependencies",
        entity_id=normalized,
        trace_id=trace_id,
        started=started,
        success=True,
        detail={"type": deps.type, "service_count": len(deps.dependencies.services)},
    )
    return AnalysisResponse(success=True, message=document, trace_id=trace_id, data=data)
