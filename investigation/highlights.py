"""Highlight selection over ranked contributors.

Rendering is not this package's concern: the caller reports which rows are
currently rendered (``facet_id -> dims``) and gets back the rows to mark.
Calling again after more rows render is how late facets pick up highlights.
"""

from dataclasses import dataclass
from typing import Callable, Collection, Iterable, Mapping

from investigation.models.anomaly import AnomalyCategory
from investigation.models.contributor import Contributor, SelectionContributor

# facet_id -> dimension values currently rendered for that facet
RenderableKeys = Mapping[str, Collection[str]]

AnyContributor = Contributor | SelectionContributor


@dataclass(frozen=True)
class Highlight:
    """A rendered row marked for a contributor.

    ``dim`` is the rendered value, which may differ in case from the
    contributor's own value.
    """

    facet_id: str
    dim: str
    contributor: AnyContributor

    @property
    def category(self) -> AnomalyCategory:
        """Color class of the highlight."""
        return self.contributor.category

    def to_dict(self) -> dict:
        """Convert to dictionary for serialization."""
        return {
            "facet_id": self.facet_id,
            "dim": self.dim,
            "category": self.category.value,
            "share_change": self.contributor.share_change,
            "anomaly_id": getattr(self.contributor, "anomaly_id", ""),
            "rank": getattr(self.contributor, "rank", 0),
        }


def find_rendered_dim(rendered: Iterable[str], dim: str) -> str | None:
    """Find the rendered value for ``dim``: exact match first, then case-insensitive."""
    rendered = list(rendered)
    if dim in rendered:
        return dim
    if dim:
        lowered = dim.lower()
        for candidate in rendered:
            if candidate is not None and candidate.lower() == lowered:
                return candidate
    return None


def by_share_change(contributor: AnyContributor) -> tuple:
    """Ranking key: share change descending, ties broken by identity."""
    return (
        -contributor.share_change,
        contributor.facet_id,
        contributor.dim,
        getattr(contributor, "anomaly_id", ""),
    )


def by_max_change(contributor: SelectionContributor) -> tuple:
    """Ranking key for selections: strongest absolute change first."""
    return (-contributor.max_change, contributor.facet_id, contributor.dim)


def rank_contributors(
    contributors: Iterable[AnyContributor],
    key: Callable[[AnyContributor], tuple] = by_share_change,
) -> list[AnyContributor]:
    """Sort contributors into highlight priority order.

    The keys are total orders, so the ranking does not depend on the order
    in which contributors were collected.
    """
    return sorted(contributors, key=key)


def select_highlights(
    contributors: Iterable[AnyContributor],
    renderable_keys: RenderableKeys | None = None,
    budget: int = 3,
    focused_anomaly_id: str | None = None,
    key: Callable[[AnyContributor], tuple] | None = by_share_change,
) -> list[Highlight]:
    """Pick up to ``budget`` rendered rows to highlight, in priority order.

    Args:
        contributors: Candidate contributors
        renderable_keys: Rendered rows per facet. None treats every
            contributor as rendered.
        budget: Maximum number of highlights
        focused_anomaly_id: If set, only this anomaly's contributors count
        key: Ranking key, or None if ``contributors`` is already ranked

    Returns:
        The highlighted rows. A row is highlighted at most once.
    """
    ranked = rank_contributors(contributors, key) if key is not None else list(contributors)

    highlights: list[Highlight] = []
    seen: set[tuple[str, str]] = set()
    for contributor in ranked:
        if len(highlights) >= budget:
            break
        if focused_anomaly_id and getattr(contributor, "anomaly_id", "") != focused_anomaly_id:
            continue

        if renderable_keys is None:
            dim = contributor.dim
        else:
            rendered = renderable_keys.get(contributor.facet_id)
            if not rendered:
                continue
            dim = find_rendered_dim(rendered, contributor.dim)
            if dim is None:
                continue

        if (contributor.facet_id, dim) in seen:
            continue
        seen.add((contributor.facet_id, dim))
        highlights.append(Highlight(facet_id=contributor.facet_id, dim=dim, contributor=contributor))
    return highlights
