from matchoracle.trinity.cache import TrinityMetricsCache, TrinityMetricsEntry
from matchoracle.trinity.context import NEUTRAL_CONTEXT, SimulationContext
from matchoracle.trinity.engine import TrinityContextEngine

__all__ = [
    "NEUTRAL_CONTEXT",
    "SimulationContext",
    "TrinityContextEngine",
    "TrinityMetricsCache",
    "TrinityMetricsEntry",
]
