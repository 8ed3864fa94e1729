"""Investigation API routes."""

import math
from datetime import datetime
from typing import Any, Literal

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from investigation.cache import CacheStore, MemoryKeyValueStore
from investigation.executor import ClickHouseExecutor
from investigation.highlights import Highlight
from investigation.identifiers import generate_cache_key
from investigation.models import (
    Anomaly,
    AnomalyCategory,
    AnomalyType,
    ChartPoint,
    Contributor,
    FilterClause,
    InvestigationResult,
    QueryContext,
    SelectionContributor,
    ensure_utc,
)
from investigation.orchestrator import InvestigationOrchestrator

router = APIRouter(prefix="/investigations", tags=["Investigations"])

# Orchestrator instance (will be configured in main.py)
_orchestrator: InvestigationOrchestrator | None = None


def get_orchestrator() -> InvestigationOrchestrator:
    """Get the investigation orchestrator instance."""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = InvestigationOrchestrator(
            cache=CacheStore(MemoryKeyValueStore()),
            executor=ClickHouseExecutor(),
        )
    return _orchestrator


def set_orchestrator(orchestrator: InvestigationOrchestrator | None) -> None:
    """Set the investigation orchestrator instance."""
    global _orchestrator
    _orchestrator = orchestrator


def _finite_or_none(value: float) -> float | None:
    return value if math.isfinite(value) else None


# --- Request/Response Models ---


class FilterClauseRequest(BaseModel):
    """An active facet filter."""

    column: str = Field(..., min_length=1, description="Column expression, e.g. `request.host`")
    value: str | int
    operator: Literal["=", "!="] = "="


class QueryContextRequest(BaseModel):
    """Time, host and filter state of the investigation."""

    time_filter: str = Field(..., min_length=1, description="Resolved time filter")
    host_filter: str = ""
    filters: list[FilterClauseRequest] = Field(default_factory=list)
    filter_clause: str | None = Field(
        default=None,
        description="Pre-compiled filter clause, used when no structured filters are given",
    )

    def to_context(self) -> QueryContext:
        """Build the domain query context."""
        if self.filter_clause and not self.filters:
            return QueryContext.from_clause(self.time_filter, self.host_filter, self.filter_clause)
        return QueryContext.from_filters(
            self.time_filter,
            self.host_filter,
            [FilterClause(column=f.column, value=f.value, operator=f.operator) for f in self.filters],
        )


class AnomalyRequest(BaseModel):
    """A detected anomaly."""

    rank: int = Field(..., ge=1)
    category: AnomalyCategory
    type: AnomalyType
    start_time: datetime
    end_time: datetime
    magnitude: float = 0.0

    def to_anomaly(self) -> Anomaly:
        """Build the domain anomaly."""
        if ensure_utc(self.start_time) > ensure_utc(self.end_time):
            raise ValueError(f"Anomaly #{self.rank} starts after it ends")
        return Anomaly(
            rank=self.rank,
            category=self.category,
            type=self.type,
            start_time=self.start_time,
            end_time=self.end_time,
            magnitude=self.magnitude,
        )


class InvestigateRequest(BaseModel):
    """Request model for an anomaly investigation."""

    context: QueryContextRequest
    anomalies: list[AnomalyRequest] = Field(default_factory=list)
    chart_data: list[datetime] = Field(
        default_factory=list, description="Timestamps of the rendered series"
    )
    renderable: dict[str, list[str]] | None = Field(
        default=None, description="Rendered rows per facet; omit to treat all as rendered"
    )
    focused_anomaly_id: str | None = None


class ContributorResponse(BaseModel):
    """Response model for a contributor.

    ``rate_change`` is null when the value only appeared during the anomaly.
    """

    facet_id: str
    facet: str
    dim: str
    category: str
    anomaly_rate: float
    baseline_rate: float
    rate_change: float | None
    is_new: bool
    anomaly_share: float
    baseline_share: float
    share_change: float
    error_rate_change: float
    rank: int
    anomaly_id: str

    @classmethod
    def from_contributor(cls, contributor: Contributor) -> "ContributorResponse":
        """Create response from domain model."""
        return cls(
            facet_id=contributor.facet_id,
            facet=contributor.facet,
            dim=contributor.dim,
            category=contributor.category.value,
            anomaly_rate=contributor.anomaly_rate,
            baseline_rate=contributor.baseline_rate,
            rate_change=_finite_or_none(contributor.rate_change),
            is_new=math.isinf(contributor.rate_change),
            anomaly_share=contributor.anomaly_share,
            baseline_share=contributor.baseline_share,
            share_change=contributor.share_change,
            error_rate_change=contributor.error_rate_change,
            rank=contributor.rank,
            anomaly_id=contributor.anomaly_id,
        )


class InvestigationResultResponse(BaseModel):
    """Response model for one anomaly's investigation."""

    anomaly_id: str
    label: str
    anomaly: dict[str, Any]
    facets: dict[str, list[ContributorResponse]]

    @classmethod
    def from_result(cls, result: InvestigationResult) -> "InvestigationResultResponse":
        """Create response from domain model."""
        return cls(
            anomaly_id=result.anomaly_id,
            label=result.anomaly.label,
            anomaly=result.anomaly.to_dict(),
            facets={
                facet_id: [ContributorResponse.from_contributor(c) for c in items]
                for facet_id, items in result.facets.items()
            },
        )


class HighlightResponse(BaseModel):
    """Response model for a highlighted row."""

    facet_id: str
    dim: str
    category: str
    share_change: float
    anomaly_id: str
    rank: int

    @classmethod
    def from_highlight(cls, highlight: Highlight) -> "HighlightResponse":
        """Create response from domain model."""
        return cls(**highlight.to_dict())


class InvestigationResponse(BaseModel):
    """Response model for an anomaly investigation."""

    results: list[InvestigationResultResponse]
    highlights: list[HighlightResponse]
    count: int


class SelectionRequest(BaseModel):
    """Request model for a selection comparison."""

    selection_start: datetime
    selection_end: datetime
    full_start: datetime
    full_end: datetime
    context: QueryContextRequest | None = None


class SelectionContributorResponse(BaseModel):
    """Response model for a selection contributor."""

    facet_id: str
    dim: str
    selection_rate: float
    baseline_rate: float
    rate_change: float | None
    is_new: bool
    selection_share: float
    baseline_share: float
    traffic_share_change: float
    err_share_change: float
    err_rate_change: float
    share_change: float
    max_change: float
    direction: str

    @classmethod
    def from_contributor(cls, contributor: SelectionContributor) -> "SelectionContributorResponse":
        """Create response from domain model."""
        return cls(
            facet_id=contributor.facet_id,
            dim=contributor.dim,
            selection_rate=contributor.selection_rate,
            baseline_rate=contributor.baseline_rate,
            rate_change=_finite_or_none(contributor.rate_change),
            is_new=math.isinf(contributor.rate_change),
            selection_share=contributor.selection_share,
            baseline_share=contributor.baseline_share,
            traffic_share_change=contributor.traffic_share_change,
            err_share_change=contributor.err_share_change,
            err_rate_change=contributor.err_rate_change,
            share_change=contributor.share_change,
            max_change=contributor.max_change,
            direction=contributor.direction,
        )


class SelectionResponse(BaseModel):
    """Response model for a selection comparison."""

    contributors: list[SelectionContributorResponse]
    highlights: list[HighlightResponse]
    count: int


class RenderableRequest(BaseModel):
    """Rows currently rendered per facet."""

    renderable: dict[str, list[str]] | None = None


class HighlightsResponse(BaseModel):
    """Response model for the current highlight state."""

    highlights: list[HighlightResponse]
    selection_highlights: list[HighlightResponse]


class HighlightedDimensionsResponse(BaseModel):
    """Response model for the highlighted dimensions of a facet."""

    facet_id: str
    dims: list[str]
    focused_anomaly_id: str | None


class CacheStatusResponse(BaseModel):
    """Response model for cache status."""

    cached: bool
    cache_key: str | None
    statistics: dict[str, Any]


def _highlights_response(orchestrator: InvestigationOrchestrator) -> HighlightsResponse:
    return HighlightsResponse(
        highlights=[HighlightResponse.from_highlight(h) for h in orchestrator.session.highlights],
        selection_highlights=[
            HighlightResponse.from_highlight(h) for h in orchestrator.session.selection_highlights
        ],
    )


# --- Endpoints ---


@router.post("", response_model=InvestigationResponse)
async def investigate(
    request: InvestigateRequest,
    orchestrator: InvestigationOrchestrator = Depends(get_orchestrator),
) -> InvestigationResponse:
    """Investigate anomalies for a query context.

    Reuses the memory or durable cache when the context is eligible and
    cached contributors still cover the highlight budget; otherwise runs a
    fresh investigation across all investigated dimensions.
    """
    try:
        anomalies = [a.to_anomaly() for a in request.anomalies]
        context = request.context.to_context()
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    if request.renderable is not None:
        orchestrator.set_renderable_keys(request.renderable)
    orchestrator.set_focused_anomaly(request.focused_anomaly_id)

    results = await orchestrator.investigate(
        anomalies,
        [ChartPoint(t=t) for t in request.chart_data],
        context,
    )

    return InvestigationResponse(
        results=[InvestigationResultResponse.from_result(r) for r in results],
        highlights=[HighlightResponse.from_highlight(h) for h in orchestrator.session.highlights],
        count=len(results),
    )


@router.post("/selection", response_model=SelectionResponse)
async def investigate_selection(
    request: SelectionRequest,
    orchestrator: InvestigationOrchestrator = Depends(get_orchestrator),
) -> SelectionResponse:
    """Compare a selected range against the rest of the visible range.

    Selections are exploratory and never cached.
    """
    if ensure_utc(request.selection_start) > ensure_utc(request.selection_end):
        raise HTTPException(status_code=400, detail="Selection start must not be after end")
    if ensure_utc(request.full_start) > ensure_utc(request.full_end):
        raise HTTPException(status_code=400, detail="Visible range start must not be after end")

    context = request.context.to_context() if request.context else None
    contributors = await orchestrator.investigate_selection(
        request.selection_start,
        request.selection_end,
        request.full_start,
        request.full_end,
        context,
    )

    return SelectionResponse(
        contributors=[SelectionContributorResponse.from_contributor(c) for c in contributors],
        highlights=[
            HighlightResponse.from_highlight(h) for h in orchestrator.session.selection_highlights
        ],
        count=len(contributors),
    )


@router.get("/highlights/{facet_id}", response_model=HighlightedDimensionsResponse)
async def get_highlighted_dimensions(
    facet_id: str,
    orchestrator: InvestigationOrchestrator = Depends(get_orchestrator),
) -> HighlightedDimensionsResponse:
    """Get the dimension values of a facet found by the last investigation."""
    return HighlightedDimensionsResponse(
        facet_id=facet_id,
        dims=sorted(orchestrator.get_highlighted_dimensions(facet_id)),
        focused_anomaly_id=orchestrator.session.focused_anomaly_id,
    )


@router.put("/renderable", response_model=HighlightsResponse)
async def set_renderable(
    request: RenderableRequest,
    orchestrator: InvestigationOrchestrator = Depends(get_orchestrator),
) -> HighlightsResponse:
    """Report the currently rendered rows and re-apply highlights."""
    orchestrator.set_renderable_keys(request.renderable)
    return _highlights_response(orchestrator)


@router.get("/rank/{rank}")
async def get_anomaly_id_by_rank(
    rank: int,
    orchestrator: InvestigationOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Get the anomaly ID of the last investigation's anomaly with a rank.

    Raises:
        404: If no anomaly has this rank
    """
    anomaly_id = orchestrator.get_anomaly_id_by_rank(rank)
    if anomaly_id is None:
        raise HTTPException(status_code=404, detail=f"No anomaly with rank {rank}")
    return {"rank": rank, "anomaly_id": anomaly_id}


@router.get("/cache", response_model=CacheStatusResponse)
async def get_cache_status(
    time_filter: str | None = Query(default=None, description="Defaults to the session context"),
    host_filter: str = Query(default=""),
    orchestrator: InvestigationOrchestrator = Depends(get_orchestrator),
) -> CacheStatusResponse:
    """Check whether an eligible cached investigation exists."""
    context = (
        QueryContext(time_filter=time_filter, host_filter=host_filter)
        if time_filter
        else orchestrator.session.context
    )
    cache_key = generate_cache_key(context.time_filter, context.host_filter) if context else None
    return CacheStatusResponse(
        cached=orchestrator.has_cached_investigation(context),
        cache_key=cache_key,
        statistics=orchestrator.cache.get_statistics(),
    )


@router.post("/invalidate")
async def invalidate_cache(
    orchestrator: InvestigationOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Invalidate the session and the memory cache tier."""
    orchestrator.invalidate_cache()
    return {"status": "invalidated", "generation": orchestrator.session.generation}


@router.get("/{anomaly_id}", response_model=InvestigationResultResponse)
async def get_investigation(
    anomaly_id: str,
    orchestrator: InvestigationOrchestrator = Depends(get_orchestrator),
) -> InvestigationResultResponse:
    """Get the investigation of an anomaly by its ID.

    Raises:
        404: If the anomaly was not investigated in this session
    """
    result = orchestrator.get_result_by_anomaly_id(anomaly_id)
    if result is None:
        raise HTTPException(status_code=404, detail="Investigation not found")
    return InvestigationResultResponse.from_result(result)
