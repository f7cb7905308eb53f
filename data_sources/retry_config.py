"""
Centralized Retry Configuration for CareConnect API
Provides configurable retry profiles for each outbound query type.
"""

from dataclasses import dataclass
from typing import Dict, Optional
from enum import Enum
from logging_config import get_logger

logger = get_logger(__name__)


class RetryProfile(Enum):
    """Retry behavior profiles for different query types."""
    GEOCODING = "geocoding"    # Nominatim lookups - quick, users are waiting
    HEALTHCARE = "healthcare"  # Overpass healthcare union query - heavy, worth more attempts
    DETAILS = "details"        # Overpass single-element lookup
    NONE = "none"              # Single attempt, used by tests and callers that retry themselves


@dataclass
class RetryConfig:
    """Configuration for retry behavior."""
    max_attempts: int = 3
    base_wait: float = 1.0
    max_wait: float = 10.0  # Maximum wait time between retries
    exponential_backoff: bool = True
    retry_on_timeout: bool = True
    retry_on_429: bool = True  # Retry on rate limits

    def __post_init__(self):
        """Validate configuration."""
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.base_wait < 0:
            raise ValueError("base_wait must be >= 0")
        if self.max_wait < self.base_wait:
            raise ValueError("max_wait must be >= base_wait")


RETRY_PROFILES: Dict[RetryProfile, RetryConfig] = {
    RetryProfile.GEOCODING: RetryConfig(
        max_attempts=2,
        base_wait=1.0,
        max_wait=5.0,
    ),
    RetryProfile.HEALTHCARE: RetryConfig(
        max_attempts=3,
        base_wait=2.0,
        max_wait=15.0,
    ),
    RetryProfile.DETAILS: RetryConfig(
        max_attempts=2,
        base_wait=1.0,
        max_wait=5.0,
    ),
    RetryProfile.NONE: RetryConfig(
        max_attempts=1,
        base_wait=0.0,
        max_wait=0.0,
        retry_on_timeout=False,
        retry_on_429=False,
    ),
}


QUERY_TYPE_PROFILES: Dict[str, RetryProfile] = {
    "geocoding": RetryProfile.GEOCODING,
    "healthcare": RetryProfile.HEALTHCARE,
    "details": RetryProfile.DETAILS,
}


def get_retry_config(query_type: str, profile: Optional[RetryProfile] = None) -> RetryConfig:
    """
    Get retry configuration for a query type.

    Args:
        query_type: Type of query ("geocoding", "healthcare", "details")
        profile: Optional override profile (if None, uses query_type mapping)

    Returns:
        RetryConfig for the query type
    """
    if profile is not None:
        return RETRY_PROFILES[profile]

    profile = QUERY_TYPE_PROFILES.get(query_type)
    if profile is None:
        logger.debug(f"No retry profile registered for '{query_type}', using single attempt")
        profile = RetryProfile.NONE
    return RETRY_PROFILES[profile]
