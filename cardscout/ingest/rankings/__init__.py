"""Ranking provider connectors."""

from cardscout.ingest.rankings.fangraphs import FanGraphsSource
from cardscout.ingest.rankings.mlb_pipeline import MLBPipelineSource
from cardscout.ingest.rankings.payloads import (
    FanGraphsRow,
    PipelineRow,
    ProspectusRow,
    ProviderRow,
    normalize_row,
)
from cardscout.ingest.rankings.prospectus import ProspectusSource

__all__ = [
    "FanGraphsSource",
    "MLBPipelineSource",
    "ProspectusSource",
    "FanGraphsRow",
    "PipelineRow",
    "ProspectusRow",
    "ProviderRow",
    "normalize_row",
]
