"""Investigation orchestration.

Drives facet analysis across anomalies, merges contributors into a ranked
list, maintains progressive highlights, and reads and writes both cache
tiers. All mutable state lives in an explicit ``InvestigationSession``.
"""

import asyncio
import logging
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Iterable, Mapping, Sequence

from investigation.analysis.dimensions import Dimension, DimensionRegistry, get_dimension_registry
from investigation.analysis.facet_analyzer import FacetAnalyzer
from investigation.analysis.selection_analyzer import SelectionAnalyzer
from investigation.cache.cache_store import CacheStore
from investigation.config.settings import Settings, get_settings
from investigation.executor.interface import AggregationExecutor
from investigation.highlights import (
    Highlight,
    by_max_change,
    rank_contributors,
    select_highlights,
)
from investigation.identifiers import generate_anomaly_id, generate_cache_key
from investigation.models.anomaly import Anomaly, ChartPoint, TimeWindow, visible_window
from investigation.models.contributor import (
    Contributor,
    InvestigationResult,
    SelectionContributor,
)
from investigation.models.query_context import QueryContext

logger = logging.getLogger(__name__)


@dataclass
class InvestigationSession:
    """State of one investigation session.

    ``generation`` is bumped by every investigation start, context change
    and invalidation. An investigation only applies its completions while
    the generation it started under is still current.
    """

    context: QueryContext | None = None
    results: list[InvestigationResult] = field(default_factory=list)
    contributors: list[Contributor] = field(default_factory=list)
    cached_top_contributors: list[Contributor] | None = None
    highlights: list[Highlight] = field(default_factory=list)
    selection_contributors: list[SelectionContributor] = field(default_factory=list)
    selection_highlights: list[Highlight] = field(default_factory=list)
    results_by_id: dict[str, InvestigationResult] = field(default_factory=dict)
    focused_anomaly_id: str | None = None
    renderable_keys: dict[str, list[str]] | None = None
    generation: int = 0

    def bump(self) -> int:
        """Start a new generation and return it."""
        self.generation += 1
        return self.generation

    def is_current(self, generation: int) -> bool:
        """Check whether ``generation`` has not been superseded."""
        return self.generation == generation

    def index_results(self, results: Iterable[InvestigationResult]) -> None:
        """Make results addressable by anomaly ID."""
        for result in results:
            if result.anomaly_id:
                self.results_by_id[result.anomaly_id] = result


class InvestigationOrchestrator:
    """Investigate anomalies and expose progressive highlight state.

    Anomalies are investigated one after another; the facets of a single
    anomaly are analyzed concurrently. After every facet completion the
    merged contributor list is re-ranked and the highlight budget is
    re-selected from currently renderable rows.
    """

    def __init__(
        self,
        cache: CacheStore,
        executor: AggregationExecutor,
        settings: Settings | None = None,
        registry: DimensionRegistry | None = None,
        session: InvestigationSession | None = None,
    ) -> None:
        """Initialize the orchestrator.

        Args:
            cache: Two-tier investigation cache
            executor: Remote aggregation executor
            settings: Settings to use (defaults to global settings)
            registry: Dimension registry (defaults to the global registry)
            session: Session state (a new session by default)
        """
        self._settings = settings or get_settings()
        self._cache = cache
        self._registry = registry or get_dimension_registry()
        self._facet_analyzer = FacetAnalyzer(executor, self._settings)
        self._selection_analyzer = SelectionAnalyzer(executor, self._settings)
        self.session = session or InvestigationSession()

    @property
    def budget(self) -> int:
        """Number of contributors highlighted at once."""
        return self._settings.highlight_top_n

    @property
    def cache(self) -> CacheStore:
        """The investigation cache."""
        return self._cache

    # --- Context ---

    def update_context(self, context: QueryContext) -> bool:
        """Set the current query context.

        A changed context supersedes any running investigation and drops
        the session's results; cached results stay available through the
        cache tiers.

        Returns:
            True if the context changed
        """
        if context == self.session.context:
            return False
        self.session.context = context
        self.session.bump()
        self.session.results = []
        self.session.contributors = []
        self.session.cached_top_contributors = None
        self.session.highlights = []
        logger.debug("Query context changed", extra={"generation": self.session.generation})
        return True

    def _require_context(self, context: QueryContext | None) -> QueryContext:
        if context is not None:
            self.update_context(context)
        if self.session.context is None:
            raise ValueError("No query context set")
        return self.session.context

    # --- Anomaly investigation ---

    async def investigate(
        self,
        anomalies: Sequence[Anomaly],
        chart_data: Sequence[ChartPoint],
        context: QueryContext | None = None,
    ) -> list[InvestigationResult]:
        """Investigate anomalies, reusing cached results where eligible.

        Args:
            anomalies: Detected anomalies, in rank order
            chart_data: Rendered series; its first and last points bound
                the visible window
            context: Current query context (defaults to the session's)

        Returns:
            One result per anomaly. Empty if there are no anomalies, or if
            an investigation is needed and the chart has fewer than two points.

        Raises:
            ValueError: If no query context is available
        """
        if not anomalies:
            self.clear_highlights()
            return []

        context = self._require_context(context)
        key = generate_cache_key(context.time_filter, context.host_filter)
        generation = self.session.bump()
        logger.debug("Investigation cache key", extra={"key": key, "generation": generation})

        memory_entry = self._cache.recall(key, context)
        if memory_entry is not None:
            self.session.results = memory_entry.results
            self.session.index_results(memory_entry.results)
            highlighted = self._highlight_cached(
                memory_entry.top_contributors, memory_entry.results
            )
            if highlighted >= self.budget:
                logger.info("Memory cache sufficient", extra={"key": key})
                return memory_entry.results
            logger.info(
                "Insufficient highlights from memory cache, fetching fresh candidates",
                extra={"highlighted": highlighted, "budget": self.budget},
            )
            self._cache.forget()

        entry = self._cache.load(key, context)
        if entry is not None and entry.results:
            self.session.results = entry.results
            self.session.index_results(entry.results)
            highlighted = self._highlight_cached(entry.top_contributors, entry.results)
            if highlighted >= self.budget:
                logger.info("Durable cache sufficient, skipping fresh investigation")
                self._cache.remember(
                    key,
                    entry.results,
                    entry.context or context,
                    entry.top_contributors or None,
                )
                return entry.results
            logger.info(
                "Insufficient highlights from durable cache, fetching fresh candidates",
                extra={"highlighted": highlighted, "budget": self.budget},
            )

        return await self._investigate_fresh(anomalies, chart_data, context, key, generation)

    def _highlight_cached(
        self,
        top_contributors: list[Contributor] | None,
        results: list[InvestigationResult],
    ) -> int:
        """Highlight from cached contributors and return the coverage.

        Entries without top contributors predate them; they are highlighted
        from their results and count as fully covered.
        """
        if top_contributors:
            self.session.cached_top_contributors = list(top_contributors)
            self.session.contributors = list(top_contributors)
            self._apply_highlights(self.session.cached_top_contributors)
            return len(self.session.highlights)

        self.session.cached_top_contributors = None
        self.session.contributors = [c for r in results for c in r.contributors()]
        self._apply_highlights(self.session.contributors)
        return self.budget

    async def _investigate_fresh(
        self,
        anomalies: Sequence[Anomaly],
        chart_data: Sequence[ChartPoint],
        context: QueryContext,
        key: str,
        generation: int,
    ) -> list[InvestigationResult]:
        window = visible_window(chart_data)
        results: list[InvestigationResult] = []
        self.session.results = results
        self.session.contributors = []
        self.session.cached_top_contributors = None

        if window is None:
            logger.info("No chart data for investigation")
            return []

        logger.info(
            "Starting fresh investigation",
            extra={"anomalies": len(anomalies), "generation": generation},
        )
        dimensions = self._registry.investigated()
        base_filters = context.facet_filter_sql

        for anomaly in anomalies:
            if not self.session.is_current(generation):
                break

            anomaly_id = generate_anomaly_id(
                context.time_filter,
                base_filters,
                anomaly.start_time,
                anomaly.end_time,
                anomaly.category,
            )
            result = InvestigationResult(anomaly=anomaly, anomaly_id=anomaly_id)
            results.append(result)
            self.session.results_by_id[anomaly_id] = result

            await asyncio.gather(
                *(
                    self._investigate_facet(dimension, anomaly, result, window, context, generation)
                    for dimension in dimensions
                )
            )

        if not self.session.is_current(generation):
            logger.info(
                "Discarding superseded investigation",
                extra={"generation": generation, "current": self.session.generation},
            )
            return results

        top = rank_contributors(self.session.contributors)[: self._settings.cache.top_n]
        self.session.cached_top_contributors = top
        self._cache.remember(key, results, context, top)
        self._cache.save(key, results, top, context)

        if not self.session.contributors:
            self.clear_highlights()

        logger.info(
            "Investigation complete",
            extra={"anomalies": len(results), "contributors": len(self.session.contributors)},
        )
        return results

    async def _investigate_facet(
        self,
        dimension: Dimension,
        anomaly: Anomaly,
        result: InvestigationResult,
        window: TimeWindow,
        context: QueryContext,
        generation: int,
    ) -> None:
        contributors = await self._facet_analyzer.analyze(dimension, anomaly, window, context)
        if not contributors or not self.session.is_current(generation):
            return

        tagged = [replace(c, anomaly_id=result.anomaly_id, rank=anomaly.rank) for c in contributors]
        result.facets[dimension.id] = tagged
        self.session.contributors.extend(tagged)
        self._apply_highlights(self.session.contributors)

    # --- Selection investigation ---

    async def investigate_selection(
        self,
        selection_start: datetime,
        selection_end: datetime,
        full_start: datetime,
        full_end: datetime,
        context: QueryContext | None = None,
    ) -> list[SelectionContributor]:
        """Compare a selected range against the rest of the visible range.

        Always runs fresh and is never cached. Clears anomaly highlights.

        Returns:
            Contributors of all dimensions sorted by ``max_change`` descending
        """
        self.clear_highlights()
        self.clear_selection()

        context = context or self.session.context
        selection = TimeWindow(start=selection_start, end=selection_end)
        full_window = TimeWindow(start=full_start, end=full_end)
        generation = self.session.generation

        per_dimension = await asyncio.gather(
            *(
                self._selection_analyzer.analyze(dimension, selection, full_window, context)
                for dimension in self._registry.investigated()
            )
        )
        ranked = rank_contributors(
            [c for items in per_dimension for c in items], key=by_max_change
        )

        if not self.session.is_current(generation):
            logger.info("Discarding superseded selection investigation")
            return ranked

        self.session.selection_contributors = ranked
        self._apply_selection_highlights()
        logger.info(
            "Selection investigation complete",
            extra={
                "contributors": len(ranked),
                "highlighted": len(self.session.selection_highlights),
            },
        )
        return ranked

    # --- Highlights ---

    def _apply_highlights(self, contributors: Iterable[Contributor]) -> list[Highlight]:
        self.session.highlights = select_highlights(
            contributors,
            renderable_keys=self.session.renderable_keys,
            budget=self.budget,
            focused_anomaly_id=self.session.focused_anomaly_id,
        )
        return self.session.highlights

    def _apply_selection_highlights(self) -> list[Highlight]:
        self.session.selection_highlights = select_highlights(
            self.session.selection_contributors,
            renderable_keys=self.session.renderable_keys,
            budget=self.budget,
            key=by_max_change,
        )
        return self.session.selection_highlights

    def reapply_highlights(self) -> list[Highlight]:
        """Re-select highlights, e.g. after more rows were rendered. Idempotent."""
        if self.session.selection_contributors:
            self._apply_selection_highlights()
        if self.session.cached_top_contributors:
            return self._apply_highlights(self.session.cached_top_contributors)
        if self.session.contributors:
            return self._apply_highlights(self.session.contributors)
        return self.session.highlights

    def set_renderable_keys(self, renderable_keys: Mapping[str, Iterable[str]] | None) -> list[Highlight]:
        """Report the currently rendered rows and re-select highlights.

        None treats every contributor as rendered.
        """
        if renderable_keys is None:
            self.session.renderable_keys = None
        else:
            self.session.renderable_keys = {
                facet_id: list(dict.fromkeys(dims)) for facet_id, dims in renderable_keys.items()
            }
        return self.reapply_highlights()

    def set_focused_anomaly(self, anomaly_id: str | None) -> list[Highlight]:
        """Restrict highlights and highlighted dimensions to one anomaly."""
        self.session.focused_anomaly_id = anomaly_id or None
        return self.reapply_highlights()

    def clear_highlights(self) -> None:
        """Drop all anomaly and selection highlights."""
        self.session.highlights = []
        self.session.selection_highlights = []

    def clear_selection(self) -> None:
        """Drop selection contributors and their highlights only."""
        self.session.selection_contributors = []
        self.session.selection_highlights = []

    def get_highlighted_dimensions(self, facet_id: str) -> set[str]:
        """Dimension values of a facet found by the last investigation.

        Restricted to the focused anomaly if one is set.
        """
        focused = self.session.focused_anomaly_id
        dims: set[str] = set()
        for result in self.session.results:
            if focused and result.anomaly_id != focused:
                continue
            dims.update(c.dim for c in result.facets.get(facet_id, []))
        return dims

    # --- Lookups ---

    def get_result_by_anomaly_id(self, anomaly_id: str) -> InvestigationResult | None:
        """Get the result investigated under an anomaly ID in this session."""
        return self.session.results_by_id.get(anomaly_id)

    def get_anomaly_id_by_rank(self, rank: int) -> str | None:
        """Get the anomaly ID of the last results' anomaly with this rank."""
        for result in self.session.results:
            if result.anomaly.rank == rank:
                return result.anomaly_id
        return None

    def last_results(self) -> list[InvestigationResult]:
        """Results of the last investigation, possibly still filling in."""
        return self.session.results

    # --- Cache control ---

    def invalidate_cache(self) -> None:
        """Supersede running work and drop the session and memory tier."""
        self.session.bump()
        self.session.results = []
        self.session.contributors = []
        self.session.cached_top_contributors = None
        self._cache.forget()
        self.clear_highlights()
        logger.info("Investigation cache invalidated", extra={"generation": self.session.generation})

    def has_cached_investigation(self, context: QueryContext | None = None) -> bool:
        """Check whether either cache tier holds an eligible investigation."""
        context = context or self.session.context
        if context is None:
            return False
        key = generate_cache_key(context.time_filter, context.host_filter)
        if self._cache.recall(key, context) is not None:
            return True
        return self._cache.load(key, context) is not None
