"""
Configuration and constants for the feed ranking system.
"""
import logging
import os
from dataclasses import dataclass
from typing import List

from dotenv import load_dotenv

load_dotenv()

# Cache TTL values
SUMMARY_CACHE_TTL_SECONDS = 900  # 15 minutes
RANKED_FEED_CACHE_TTL_SECONDS = 300  # 5 minutes

# Summary timeframes (lookback window in days)
TIMEFRAME_DAYS = {
    '1d': 1,
    '7d': 7,
    '30d': 30,
    '90d': 90,
}
DEFAULT_TIMEFRAME = '30d'

# Summary limits
MAX_TOP_TAGS = 10
MAX_TOP_CREATORS = 10
MAX_PREFERRED_CONTENT_TYPES = 5
MAX_PEAK_HOURS = 3

# Session and scroll thresholds
SESSION_GAP_MINUTES = 30
FAST_DWELL_MS = 3000
SLOW_DWELL_MS = 10000
DEEP_DIVE_DWELL_MS = 15000

# Ranking funnel limits
HEURISTIC_PRERANK_TRIGGER = 50
HEURISTIC_PRERANK_KEEP = 50
MAX_EXPLANATIONS = 5
ORACLE_TEXT_PREVIEW_CHARS = 200
ORACLE_MAX_TAGS_PER_CANDIDATE = 5
ORACLE_TIMEOUT_SECONDS = 10.0
ORACLE_MODEL = 'gpt-4o-mini'

# Feed request defaults
DEFAULT_FEED_LIMIT = 25
MAX_FEED_LIMIT = 100
DEFAULT_INTENT = 'default_scroll'
DEFAULT_SESSION_MODE = 'default'
SESSION_MODES: List[str] = ['quick_hits', 'deep_dive', 'only_friends', 'learning']
FETCH_OVERSAMPLE_FACTOR = 1.5
MAX_FEED_CANDIDATES = 100
MAX_PLATFORM_WORKERS = 10

# Safety pre-filter terms used when no feed rules are supplied
DEFAULT_BLOCKLIST: List[str] = ['spam', 'nsfw', 'hate', 'low_quality']
DEFAULT_BOOST_TAG_COUNT = 5

# Keyword fallback tagging
MAX_KEYWORD_TAGS = 10
MIN_KEYWORD_LENGTH = 4
KEYWORD_STOPWORDS: List[str] = [
    'this', 'that', 'with', 'from', 'they', 'been', 'have', 'were',
    'said', 'each', 'which', 'their'
]

# Content classification
SHORT_VIDEO_MAX_SECONDS = 60
THREAD_MIN_CHARS = 240
TRUNCATE_WORD_BOUNDARY_RATIO = 0.8

EVENT_TYPES: List[str] = ['view', 'like', 'skip', 'comment', 'share', 'save', 'click']
POST_TYPES: List[str] = ['short', 'longform', 'image', 'thread', 'live']


class LoggingConfig:
    """Logging configuration for the feed system."""

    LEVEL = logging.INFO
    FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'

    @staticmethod
    def configure_logging():
        """Configure logging for the feed system."""
        logging.basicConfig(
            level=os.getenv('LOG_LEVEL', logging.getLevelName(LoggingConfig.LEVEL)),
            format=LoggingConfig.FORMAT
        )


class EngagementWeights:
    """Engagement weights used by the heuristic pre-rank."""

    LIKES = 1.0
    COMMENTS = 2.0
    SHARES = 3.0


class BoostWeights:
    """Affinity boost values."""

    TAG_MATCH = 2
    CREATOR_MATCH = 3
    TYPE_MATCH = 1
    ENGAGEMENT_TIER_1 = 1
    ENGAGEMENT_TIER_2 = 2
    ENGAGEMENT_TIER_1_THRESHOLD = 100
    ENGAGEMENT_TIER_2_THRESHOLD = 1000


class HeuristicWeights:
    """Weights for the recency/engagement/boost pre-rank score."""

    RECENCY = 0.3
    ENGAGEMENT = 0.4
    BOOST = 0.3


class ConfidenceScores:
    """Confidence reported on a ranked result by ordering source."""

    ORACLE = 0.9
    HEURISTIC = 0.6
    EMPTY = 0.0


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or value == '':
        return default
    try:
        return float(value)
    except ValueError:
        logging.getLogger(__name__).warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default


@dataclass
class SummarizerSettings:
    """Tunable thresholds for behavior summarization."""

    session_gap_minutes: float = SESSION_GAP_MINUTES
    fast_dwell_ms: float = FAST_DWELL_MS
    slow_dwell_ms: float = SLOW_DWELL_MS
    deep_dive_dwell_ms: float = DEEP_DIVE_DWELL_MS
    cache_ttl_seconds: int = SUMMARY_CACHE_TTL_SECONDS

    @classmethod
    def from_env(cls) -> 'SummarizerSettings':
        return cls(
            session_gap_minutes=_env_float('SESSION_GAP_MINUTES', SESSION_GAP_MINUTES),
            fast_dwell_ms=_env_float('FAST_DWELL_MS', FAST_DWELL_MS),
            slow_dwell_ms=_env_float('SLOW_DWELL_MS', SLOW_DWELL_MS),
            deep_dive_dwell_ms=_env_float('DEEP_DIVE_DWELL_MS', DEEP_DIVE_DWELL_MS),
        )


@dataclass
class RankingSettings:
    """Tunable limits for the ranking funnel."""

    prerank_trigger: int = HEURISTIC_PRERANK_TRIGGER
    prerank_keep: int = HEURISTIC_PRERANK_KEEP
    max_explanations: int = MAX_EXPLANATIONS
    cache_ttl_seconds: int = RANKED_FEED_CACHE_TTL_SECONDS
    blocklist_file: str = ''

    @classmethod
    def from_env(cls) -> 'RankingSettings':
        return cls(
            max_explanations=int(_env_float('MAX_EXPLANATIONS', MAX_EXPLANATIONS)),
            blocklist_file=os.getenv('BLOCKLIST_FILE', ''),
        )
