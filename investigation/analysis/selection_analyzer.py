"""Selection analysis: which values changed inside a user-chosen range."""

import logging
from typing import Any

from investigation.analysis.dimensions import Dimension
from investigation.analysis.interface import BaseDimensionAnalyzer
from investigation.analysis.queries import build_selection_query
from investigation.analysis.statistics import (
    column_total,
    parse_count,
    percent_change,
    percentage,
    rate_per_minute,
    round1,
    signed_max_magnitude,
)
from investigation.models.anomaly import TimeWindow
from investigation.models.contributor import SelectionContributor
from investigation.models.query_context import QueryContext

logger = logging.getLogger(__name__)


class SelectionAnalyzer(BaseDimensionAnalyzer):
    """Compare a selected range against the rest of the visible range.

    Unlike facet analysis there is no category: all requests are counted,
    with errors (status >= 400) tracked separately. Three signals are
    derived per value, and changes in either direction are reported:

    - traffic share change
    - error share change (share of all errors)
    - error rate change (the value's own error ratio)
    """

    def build_query(
        self,
        dimension: Dimension,
        selection: TimeWindow,
        full_window: TimeWindow,
        context: QueryContext | None = None,
    ) -> str:
        """Build the aggregation statement for one dimension."""
        return build_selection_query(
            window=selection,
            full_window=full_window,
            **self._query_parts(dimension, context),
        )

    async def analyze(
        self,
        dimension: Dimension,
        selection: TimeWindow,
        full_window: TimeWindow,
        context: QueryContext | None = None,
    ) -> list[SelectionContributor]:
        """Find the values of a dimension whose behavior changed in a selection.

        Returns:
            At most ``facet.max_results`` contributors sorted by
            ``max_change`` descending. Empty if the aggregation failed.
        """
        sql = self.build_query(dimension, selection, full_window, context)
        rows = await self._fetch_rows(dimension, sql)
        if rows is None:
            return []

        try:
            analyzed = self.compute(dimension, selection, full_window, rows)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning("Malformed selection rows: %s", e, extra={"facet_id": dimension.id})
            return []

        facet = self._settings.facet
        kept = [
            c
            for c in analyzed
            if (c.selection_rate > facet.min_rate or c.baseline_rate > facet.min_rate)
            and c.max_change > facet.min_change
        ]
        kept.sort(key=lambda c: c.max_change, reverse=True)

        if not kept and analyzed:
            strongest = max(analyzed, key=lambda c: c.max_change)
            logger.debug(
                "No significant selection change",
                extra={
                    "facet_id": dimension.id,
                    "analyzed": len(analyzed),
                    "top_share_change": strongest.traffic_share_change,
                    "top_err_share_change": strongest.err_share_change,
                    "top_err_rate_change": strongest.err_rate_change,
                },
            )

        return kept[: facet.max_results]

    def compute(
        self,
        dimension: Dimension,
        selection: TimeWindow,
        full_window: TimeWindow,
        rows: list[dict[str, Any]],
    ) -> list[SelectionContributor]:
        """Derive rounded change statistics for every returned row, unfiltered."""
        selection_minutes = selection.duration_minutes
        baseline_minutes = full_window.duration_minutes - selection_minutes

        total_selection = column_total(rows, "selection_cnt")
        total_baseline = column_total(rows, "baseline_cnt")
        total_selection_err = column_total(rows, "selection_err_cnt")
        total_baseline_err = column_total(rows, "baseline_err_cnt")

        contributors = []
        for row in rows:
            selection_cnt = parse_count(row.get("selection_cnt"))
            baseline_cnt = parse_count(row.get("baseline_cnt"))
            selection_err = parse_count(row.get("selection_err_cnt"))
            baseline_err = parse_count(row.get("baseline_err_cnt"))

            selection_rate = rate_per_minute(selection_cnt, selection_minutes)
            baseline_rate = rate_per_minute(baseline_cnt, baseline_minutes)

            selection_share = percentage(selection_cnt, total_selection)
            baseline_share = percentage(baseline_cnt, total_baseline)

            share_change = round1(selection_share - baseline_share)
            err_share_change = round1(
                percentage(selection_err, total_selection_err)
                - percentage(baseline_err, total_baseline_err)
            )
            err_rate_change = round1(
                percentage(selection_err, selection_cnt) - percentage(baseline_err, baseline_cnt)
            )
            signals = (share_change, err_share_change, err_rate_change)

            contributors.append(
                SelectionContributor(
                    facet_id=dimension.id,
                    dim=str(row["dim"]),
                    selection_rate=round1(selection_rate),
                    baseline_rate=round1(baseline_rate),
                    rate_change=round1(percent_change(selection_rate, baseline_rate)),
                    selection_share=round1(selection_share),
                    baseline_share=round1(baseline_share),
                    traffic_share_change=share_change,
                    err_share_change=err_share_change,
                    err_rate_change=err_rate_change,
                    share_change=signed_max_magnitude(signals),
                    max_change=max(abs(s) for s in signals),
                )
            )
        return contributors
