"""Repository implementations package."""
from .memory import (
    InMemoryAnalyticsSink,
    InMemoryBeatRepository,
    InMemoryInteractionRepository,
    InMemorySuggestionRepository,
    InMemoryUserRepository,
)

__all__ = [
    "InMemoryAnalyticsSink",
    "InMemoryBeatRepository",
    "InMemoryInteractionRepository",
    "InMemorySuggestionRepository",
    "InMemoryUserRepository",
]
