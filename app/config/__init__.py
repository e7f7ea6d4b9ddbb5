"""Configuration package - settings, ranking tuning and logging."""
from .ranking import CacheTTLs, RankingConfig, ScoreWeights
from .settings import Settings, get_settings

__all__ = ["CacheTTLs", "RankingConfig", "ScoreWeights", "Settings", "get_settings"]
