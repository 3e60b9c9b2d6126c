"""Sports-data provider collaborators."""

from matchoracle.etl.base import DataProvider, InjuryData, MatchData, ProviderError

__all__ = ["DataProvider", "InjuryData", "MatchData", "ProviderError"]
