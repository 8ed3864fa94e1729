"""Dimension analysis module."""

from investigation.analysis.dimensions import (
    DEFAULT_DIMENSIONS,
    INVESTIGATED_DIMENSION_IDS,
    Dimension,
    DimensionRegistry,
    get_dimension_registry,
)
from investigation.analysis.facet_analyzer import FacetAnalyzer
from investigation.analysis.interface import BaseDimensionAnalyzer
from investigation.analysis.selection_analyzer import SelectionAnalyzer

__all__ = [
    "BaseDimensionAnalyzer",
    "DEFAULT_DIMENSIONS",
    "Dimension",
    "DimensionRegistry",
    "FacetAnalyzer",
    "INVESTIGATED_DIMENSION_IDS",
    "SelectionAnalyzer",
    "get_dimension_registry",
]
