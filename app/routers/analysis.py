from fastapi import APIRouter, Query

from app.models.schemas import AnalysisResponse, AnalyzeEntityRequest, EntityDependenciesRequest
from app.services.analysis_service import analyze_entity, get_entity_dependencies

router = APIRouter(prefix="/v1/analysis", tags=["analysis"])


@router.post("/entity", response_model=AnalysisResponse)
async def analyze_entity_api(req: AnalyzeEntityRequest) -> AnalysisResponse:
    return await analyze_entity(req.entity_id, req.include_history, trace_id=req.trace_id)


@router.get("/entity/{entity_id}", response_model=AnalysisResponse)
async def analyze_entity_by_path(
    entity_id: str,
    include_history: bool = Query(default=False, description="Include state history of the last 24 hours"),
) -> AnalysisResponse:
    return await analyze_entity(entity_id, include_history)


@router.post("/dependencies", response_model=AnalysisResponse)
async def entity_dependencies_api(req: EntityDependenciesRequest) -> AnalysisResponse:
    return await get_entity_dependencies(req.entity_id, trace_id=req.trace_id)


@router.get("/dependencies/{entity_id}", response_model=AnalysisResponse)
async def entity_dependencies_by_path(entity_id: str) -> AnalysisResponse:
    return await get_entity_dependencies(entity_id)
