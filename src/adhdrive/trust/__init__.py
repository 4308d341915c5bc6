"""Bounded trust score with change log and trend analysis."""

from .config import (
    DIRECTION_DECREASING,
    DIRECTION_INCREASING,
    DIRECTION_STABLE,
    resolve_trust_config,
)
from .engine import TrustScoreEngine, classify_direction, compute_trend, compute_volatility
from .models import TrustChangeEvent, TrustScore, TrustStats, TrustTrend

__all__ = [
    "DIRECTION_DECREASING",
    "DIRECTION_INCREASING",
    "DIRECTION_STABLE",
    "TrustChangeEvent",
    "TrustScore",
    "TrustScoreEngine",
    "TrustStats",
    "TrustTrend",
    "classify_direction",
    "compute_trend",
    "compute_volatility",
    "resolve_trust_config",
]
