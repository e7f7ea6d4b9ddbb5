"""
Feature flag service implementation.
Controls personalization rollout and the kill switch.
"""
import hashlib
from abc import ABC, abstractmethod

from app.config import get_settings


class FeatureFlagService(ABC):
    """Abstract base class for feature flag evaluation."""

    @abstractmethod
    def is_personalization_enabled(self, user_id: str) -> bool:
        """
        Check if personalized recommendations apply to this user.

        Args:
            user_id: User identifier for percentage rollout

        Returns:
            True if personalization should be applied
        """
        pass

    @abstractmethod
    def is_kill_switch_active(self) -> bool:
        """True if all personalization should be disabled."""
        pass


class ConfigBasedFeatureFlagService(FeatureFlagService):
    """
    Feature flag service backed by application settings.
    Supports percentage-based rollout using consistent hashing.
    """

    def __init__(self, rollout_percentage: float = 100.0) -> None:
        self._rollout_percentage = max(0.0, min(100.0, rollout_percentage))

    def is_personalization_enabled(self, user_id: str) -> bool:
        """
        Uses consistent hashing so the same user always lands in the same
        rollout bucket.
        """
        settings = get_settings()

        if self.is_kill_switch_active():
            return False

        if not settings.PERSONALIZATION_ENABLED:
            return False

        rollout = min(self._rollout_percentage, float(settings.ROLLOUT_PERCENTAGE))
        if rollout < 100.0:
            return self.rollout_bucket(user_id) < rollout

        return True

    def is_kill_switch_active(self) -> bool:
        return get_settings().KILL_SWITCH_ACTIVE

    @staticmethod
    def rollout_bucket(user_id: str) -> int:
        """MD5 hash of the user id mod 100."""
        hash_bytes = hashlib.md5(user_id.encode()).digest()
        hash_value = int.from_bytes(hash_bytes[:4], byteorder="big")
        return hash_value % 100

    def set_rollout_percentage(self, percentage: float) -> None:
        """Update rollout percentage (for dynamic configuration)."""
        self._rollout_percentage = max(0.0, min(100.0, percentage))
