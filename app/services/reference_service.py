from typing import Any, Awaitable, Callable

from app.core.config_tree import area_in_items, entity_in_items, string_list
from app.models.schemas import AreaReference, AutomationReference, SceneReference, ScriptReference
from app.services import ha_client
from app.services.area_service import resolve_entity_area


def _optional_text(raw: Any) -> str | None:
    return raw if isinstance(raw, str) and raw else None


def _friendly_name(row: dict[str, Any]) -> str | None:
    attributes = row.get("attributes")
    if not isinstance(attributes, dict):
        return None
    return _optional_text(attributes.get("friendly_name"))


def _sequence_of(row: dict[str, Any]) -> list[Any] | None:
    attributes = row.get("attributes")
    if not isinstance(attributes, dict):
        return None
    sequence = attributes.get("sequence")
    return sequence if isinstance(sequence, list) else None


def _member_ids(row: dict[str, Any]) -> list[str]:
    attributes = row.get("attributes")
    if not isinstance(attributes, dict):
        return []
    return string_list(attributes.get("entity_id"))


def usage_phases(config: dict[str, Any], matcher: Any, literal: str) -> list[str]:
    # Phase order is fixed: trigger, condition, action.
    used_in: list[str] = []
    if matcher(config.get("triggers"), literal):
        used_in.append("trigger")
    if matcher(config.get("conditions"), literal):
        used_in.append("condition")
    if matcher(config.get("actions"), literal):
        used_in.append("action")
    return used_in


class ReferenceScan:
    """Collaborator results shared by the finders of one analysis.

    Each listing is fetched at most once and every automation config is
    fetched once, however many categories need it.
    """

    def __init__(self) -> None:
        self._results: dict[str, Any] = {}

    async def _once(self, key: str, load: Callable[[], Awaitable[Any]]) -> Any:
        if key not in self._results:
            self._results[key] = await load()
        return self._results[key]

    async def states(self) -> dict[str, Any]:
        return await self._once("states", ha_client.fetch_states)

    async def _state_rows(self) -> list[dict[str, Any]] | None:
        result = await self.states()
        return result.get("data") if result.get("ok") else None

    async def _load_automations(self) -> dict[str, Any]:
        return await ha_client.list_automations(states=await self._state_rows())

    async def _load_scripts(self) -> dict[str, Any]:
        return await ha_client.list_scripts(states=await self._state_rows())

    async def _load_scenes(self) -> dict[str, Any]:
        return await ha_client.list_scenes(states=await self._state_rows())

    async def scripts(self) -> dict[str, Any]:
        return await self._once("scripts", self._load_scripts)

    async def scenes(self) -> dict[str, Any]:
        return await self._once("scenes", self._load_scenes)

    async def automation_configs(self) -> list[tuple[dict[str, Any], dict[str, Any]]]:
        return await self._once("automation_configs", self._load_automation_configs)

    async def _load_automation_configs(self) -> list[tuple[dict[str, Any], dict[str, Any]]]:
        listed = await self._once("automations", self._load_automations)
        if not listed.get("ok"):
            return []

        pairs: list[tuple[dict[str, Any], dict[str, Any]]] = []
        for row in listed.get("data") or []:
            entity_id = str(row.get("entity_id", ""))
            if not entity_id:
                continue
            fetched = await ha_client.fetch_automation_config(entity_id)
            config = fetched.get("data")
            if not fetched.get("ok") or not isinstance(config, dict):
                continue
            pairs.append((row, config))
        return pairs


async def find_automation_references(entity_id: str, scan: ReferenceScan | None = None) -> list[AutomationReference]:
    scan = scan or ReferenceScan()
    references: list[AutomationReference] = []
    for row, config in await scan.automation_configs():
        used_in = usage_phases(config, entity_in_items, entity_id)
        if not used_in:
            continue
        references.append(
            AutomationReference(
                entity_id=row["entity_id"],
                alias=_optional_text(row.get("friendly_name")),
                state=str(row.get("state", "")),
                last_triggered=_optional_text(row.get("last_triggered")),
                used_in=used_in,
            )
        )
    return references


async def find_script_references(entity_id: str, scan: ReferenceScan | None = None) -> list[ScriptReference]:
    listed = await (scan or ReferenceScan()).scripts()
    if not listed.get("ok"):
        return []

    references: list[ScriptReference] = []
    for row in listed.get("data") or []:
        sequence = _sequence_of(row)
        if sequence is None or not entity_in_items(sequence, entity_id):
            continue
        references.append(
            ScriptReference(
                entity_id=str(row.get("entity_id", "")),
                friendly_name=_friendly_name(row),
            )
        )
    return references


async def find_scene_references(entity_id: str, scan: ReferenceScan | None = None) -> list[SceneReference]:
    listed = await (scan or ReferenceScan()).scenes()
    if not listed.get("ok"):
        return []

    return [
        SceneReference(entity_id=str(row.get("entity_id", "")), friendly_name=_friendly_name(row))
        for row in listed.get("data") or []
        if entity_id in _member_ids(row)
    ]


async def find_group_references(entity_id: str, scan: ReferenceScan | None = None) -> list[str]:
    states = await (scan or ReferenceScan()).states()
    if not states.get("ok"):
        return []

    groups: list[str] = []
    for row in states.get("data") or []:
        group_id = str(row.get("entity_id", ""))
        if not group_id.startswith(ha_client.GROUP_PREFIX):
            continue
        if entity_id in _member_ids(row):
            groups.append(group_id)
    return groups


async def find_area_references(entity_id: str, scan: ReferenceScan | None = None) -> list[AreaReference]:
    area_id = await resolve_entity_area(entity_id)
    if not area_id:
        return []

    scan = scan or ReferenceScan()
    references: list[AreaReference] = []
    for row, config in await scan.automation_configs():
        used_in = usage_phases(config, area_in_items, area_id)
        if not used_in:
            continue
        references.append(
            AreaReference(
                entity_id=row["entity_id"],
                alias=_optional_text(row.get("friendly_name")),
                type="automation",
                area_id=area_id,
                used_in=used_in,
            )
        )

    listed = await scan.scripts()
    if not listed.get("ok"):
        return references

    for row in listed.get("data") or []:
        sequence = _sequence_of(row)
        if sequence is None or not area_in_items(sequence, area_id):
            continue
        references.append(
            AreaReference(
                entity_id=str(row.get("entity_id", "")),
                alias=_friendly_name(row),
                type="script",
                area_id=area_id,
                used_in=["action"],
            )
        )
    return references
