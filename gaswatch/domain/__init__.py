from gaswatch.domain.condition import NetworkCondition
from gaswatch.domain.fees import FeeHistory, SpeedTiers
from gaswatch.domain.forecast import BestWindow, ForecastPoint, ForecastResult
from gaswatch.domain.snapshot import NetworkSnapshot

__all__ = [
    "BestWindow",
    "FeeHistory",
    "ForecastPoint",
    "ForecastResult",
    "NetworkCondition",
    "NetworkSnapshot",
    "SpeedTiers",
]
