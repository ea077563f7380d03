from typing import Any, Literal

from pydantic import BaseModel, Field


UsedIn = Literal["trigger", "condition", "action"]
DependencySource = Literal["automation", "script"]


class AnalyzeEntityRequest(BaseModel):
    entity_id: str = Field(default="", description="Entity to analyze, e.g. light.living_room")
    include_history: bool = Field(default=False, description="Include state history of the last 24 hours")
    trace_id: str | None = Field(default=None, description="Optional trace id for logs")

    model_config = {
        "json_schema_extra": {
            "example": {
                "entity_id": "light.living_room",
                "include_history": False,
                "trace_id": "req-001",
            }
        }
    }


class EntityDependenciesRequest(BaseModel):
    entity_id: str = Field(default="", description="Automation or script id, e.g. automation.night_mode")
    trace_id: str | None = Field(default=None, description="Optional trace id for logs")

    model_config = {
        "json_schema_extra": {
            "example": {
                "entity_id": "automation.night_mode",
                "trace_id": "req-002",
            }
        }
    }


class AnalysisResponse(BaseModel):
    success: bool = Field(description="Whether the analysis succeeded")
    message: str = Field(description="Formatted result document, or the error message")
    trace_id: str | None = Field(default=None, description="Trace id echoed from request")
    data: dict[str, Any] | None = Field(default=None, description="Structured result")


class AutomationReference(BaseModel):
    entity_id: str
    alias: str | None = None
    state: str = ""
    last_triggered: str | None = None
    used_in: list[UsedIn] = Field(default_factory=list)


class ScriptReference(BaseModel):
    entity_id: str
    friendly_name: str | None = None
    used_in: Literal["action"] = "action"


class SceneReference(BaseModel):
    entity_id: str
    friendly_name: str | None = None


class AreaReference(BaseModel):
    entity_id: str
    alias: str | None = None
    type: DependencySource
    area_id: str
    used_in: list[UsedIn] = Field(default_factory=list)


class EntityReferences(BaseModel):
    automations: list[AutomationReference] = Field(default_factory=list)
    scripts: list[ScriptReference] = Field(default_factory=list)
    scenes: list[SceneReference] = Field(default_factory=list)
    groups: list[str] = Field(default_factory=list)
    area_references: list[AreaReference] = Field(default_factory=list)
    total_references: int = 0

    def count_total(self) -> int:
        return (
            len(self.automations)
            + len(self.scripts)
            + len(self.scenes)
            + len(self.groups)
            + len(self.area_references)
        )


class HistoryEntry(BaseModel):
    state: str
    last_changed: str


class EntityAnalysis(BaseModel):
    entity_id: str
    state: str
    friendly_name: str | None = None
    domain: str
    attributes: dict[str, Any] = Field(default_factory=dict)
    last_changed: str | None = None
    references: EntityReferences = Field(default_factory=EntityReferences)
    summary: str = ""
    history: list[HistoryEntry] | None = None


class DependencyEntry(BaseModel):
    entity_id: str
    type: str | None = Field(default=None, description="e.g. state, numeric_state, time, condition, target")
    description: str | None = Field(default=None, description="Human-readable description")


class DependencyCategories(BaseModel):
    triggers: list[DependencyEntry] = Field(default_factory=list)
    conditions: list[DependencyEntry] = Field(default_factory=list)
    actions: list[DependencyEntry] = Field(default_factory=list)
    variables: list[str] = Field(default_factory=list)
    areas: list[str] = Field(default_factory=list)
    devices: list[str] = Field(default_factory=list)
    services: list[str] = Field(default_factory=list)


class EntityDependencies(BaseModel):
    entity_id: str
    friendly_name: str | None = None
    type: DependencySource
    dependencies: DependencyCategories = Field(default_factory=DependencyCategories)
    summary: str = ""


class OperationLogItem(BaseModel):
    event_id: str
    created_at: str
    event_type: str
    source: str
    action: str
    method: str | None = None
    path: str | None = None
    status_code: int | None = None
    duration_ms: float | None = None
    client_ip: str | None = None
    trace_id: str | None = None
    success: bool | None = None
    detail: dict[str, Any] = Field(default_factory=dict)
