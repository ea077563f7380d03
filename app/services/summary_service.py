from app.models.schemas import EntityAnalysis, EntityDependencies


NO_REFERENCES_SENTENCE = "This entity is not referenced by any automations, scripts, or scenes."


def build_entity_summary(analysis: EntityAnalysis) -> str:
    name = analysis.friendly_name or analysis.entity_id
    parts = [f"'{name}' ({analysis.domain}) is currently {analysis.state}."]

    refs = analysis.references
    if refs.total_references == 0:
        parts.append(NO_REFERENCES_SENTENCE)
    else:
        counts = [
            (len(refs.automations), "automation(s)"),
            (len(refs.scripts), "script(s)"),
            (len(refs.scenes), "scene(s)"),
            (len(refs.groups), "group(s)"),
            (len(refs.area_references), "area-based rule(s)"),
        ]
        ref_parts = [f"{count} {label}" for count, label in counts if count > 0]
        parts.append(f"Referenced by {', '.join(ref_parts)}.")

    for ref in refs.automations:
        parts.append(f"- Automation '{ref.alias or ref.entity_id}' uses it in: {', '.join(ref.used_in)}")

    return " ".join(parts)


def build_dependency_summary(deps: EntityDependencies) -> str:
    name = deps.friendly_name or deps.entity_id
    parts = [f"'{name}' ({deps.type}) dependencies:"]

    categories = deps.dependencies
    if categories.triggers:
        parts.append(f"- {len(categories.triggers)} trigger entity/entities")
    if categories.conditions:
        parts.append(f"- {len(categories.conditions)} condition entity/entities")
    if categories.actions:
        parts.append(f"- {len(categories.actions)} action target(s)")
    if categories.services:
        parts.append(f"- Services: {', '.join(categories.services)}")
    if categories.areas:
        parts.append(f"- Areas: {', '.join(categories.areas)}")

    return " ".join(parts)
