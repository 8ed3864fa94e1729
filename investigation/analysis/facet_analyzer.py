"""Facet analysis: which values of a dimension drove an anomaly."""

import logging
from typing import Any

from investigation.analysis.dimensions import Dimension
from investigation.analysis.interface import BaseDimensionAnalyzer
from investigation.analysis.queries import build_facet_query
from investigation.analysis.statistics import (
    column_total,
    parse_count,
    percent_change,
    percentage,
    rate_per_minute,
    round1,
)
from investigation.models.anomaly import Anomaly, TimeWindow
from investigation.models.contributor import Contributor
from investigation.models.query_context import QueryContext

logger = logging.getLogger(__name__)


class FacetAnalyzer(BaseDimensionAnalyzer):
    """Compare an anomaly window against the rest of the visible range.

    For each value of a dimension the analyzer derives, from the counts of
    the anomaly's category and of all requests in both windows:

    - ``rate_change``: percent change of the per-minute category rate
    - ``share_change``: the value's share of category volume during the
      anomaly minus its share during the baseline, in percentage points
    - ``error_rate_change``: change of the value's own category ratio
      (category / total), in percentage points

    A value is reported when it has volume during the anomaly and either
    its share or its error rate rose by more than the configured threshold.
    """

    def build_query(
        self,
        dimension: Dimension,
        anomaly: Anomaly,
        full_window: TimeWindow,
        context: QueryContext | None = None,
    ) -> str:
        """Build the aggregation statement for one dimension."""
        return build_facet_query(
            window=anomaly.window,
            full_window=full_window,
            category=anomaly.category,
            **self._query_parts(dimension, context),
        )

    async def analyze(
        self,
        dimension: Dimension,
        anomaly: Anomaly,
        full_window: TimeWindow,
        context: QueryContext | None = None,
    ) -> list[Contributor]:
        """Find the values of a dimension over-represented during an anomaly.

        Args:
            dimension: Breakdown to group by
            anomaly: The anomaly whose window and category are compared
            full_window: The visible range; the baseline is its remainder
            context: Current host and facet filters

        Returns:
            At most ``facet.max_results`` contributors sorted by
            ``share_change`` descending. Empty if the aggregation failed.
        """
        sql = self.build_query(dimension, anomaly, full_window, context)
        rows = await self._fetch_rows(dimension, sql)
        if rows is None:
            return []

        try:
            analyzed = self.compute(dimension, anomaly, full_window, rows)
        except (KeyError, TypeError, AttributeError) as e:
            logger.warning(
                "Malformed facet rows: %s",
                e,
                extra={"facet_id": dimension.id},
            )
            return []

        facet = self._settings.facet
        kept = [
            c
            for c in analyzed
            if c.anomaly_rate > facet.min_rate
            and (c.share_change > facet.min_change or c.error_rate_change > facet.min_change)
        ]
        kept.sort(key=lambda c: c.share_change, reverse=True)
        return kept[: facet.max_results]

    def compute(
        self,
        dimension: Dimension,
        anomaly: Anomaly,
        full_window: TimeWindow,
        rows: list[dict[str, Any]],
    ) -> list[Contributor]:
        """Derive rounded change statistics for every returned row, unfiltered."""
        anomaly_minutes = anomaly.window.duration_minutes
        baseline_minutes = full_window.duration_minutes - anomaly_minutes

        total_anomaly_cat = column_total(rows, "anomaly_cat_cnt")
        total_baseline_cat = column_total(rows, "baseline_cat_cnt")

        contributors = []
        for row in rows:
            anomaly_cat = parse_count(row.get("anomaly_cat_cnt"))
            baseline_cat = parse_count(row.get("baseline_cat_cnt"))
            anomaly_total = parse_count(row.get("anomaly_total_cnt"))
            baseline_total = parse_count(row.get("baseline_total_cnt"))

            anomaly_rate = rate_per_minute(anomaly_cat, anomaly_minutes)
            baseline_rate = rate_per_minute(baseline_cat, baseline_minutes)

            anomaly_share = percentage(anomaly_cat, total_anomaly_cat)
            baseline_share = percentage(baseline_cat, total_baseline_cat)

            # Category ratio of the value itself, independent of traffic share
            error_rate_change = percentage(anomaly_cat, anomaly_total) - percentage(
                baseline_cat, baseline_total
            )

            contributors.append(
                Contributor(
                    facet_id=dimension.id,
                    dim=str(row["dim"]),
                    category=anomaly.category,
                    anomaly_rate=round1(anomaly_rate),
                    baseline_rate=round1(baseline_rate),
                    rate_change=round1(percent_change(anomaly_rate, baseline_rate)),
                    anomaly_share=round1(anomaly_share),
                    baseline_share=round1(baseline_share),
                    share_change=round1(anomaly_share - baseline_share),
                    error_rate_change=round1(error_rate_change),
                    rank=anomaly.rank,
                )
            )
        return contributors
