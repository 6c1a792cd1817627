"""
Unified feed - behavioral analytics and feed ranking.

This package turns raw interaction events into behavior summaries, normalizes
posts from several social platforms into one schema, and ranks them per user
through a staged funnel with an optional language-model rerank.

Main modules:
- behaviorSummarizer: Event aggregation, sessions, mood and scroll heuristics
- contentNormalizer: Platform payload normalization and output formatting
- platformAdapters: Per-platform field mapping registry
- rankingFunnel: Pre-filter, boost, heuristic order, oracle rerank, explanations
- rankingEngine: Boost, engagement and recency scoring
- contentFilters: Blocklist moderation and empty-post filtering
- explanations: Reason-code explanations for ranked posts
- postCollector: Concurrent platform fetching
- feedOrchestrator: Request-level feed flow and event ingestion
- cacheManager: Redis key layout and cache helpers
- config: Constants and configuration
"""

from feed.config import LoggingConfig, RankingSettings, SummarizerSettings
from feed.exceptions import FeedError, OracleError, StoreError

# Data types
from feed.models import (
    BehaviorEvent,
    BehaviorSummary,
    FeedRules,
    NormalizedPost,
    OracleResponse,
    PlatformConnection,
    RankedResult,
    RankingContext
)

# Components
from feed.behaviorSummarizer import BehaviorSummarizer, summarize_events
from feed.contentNormalizer import ContentNormalizer, validate_normalized_post
from feed.platformAdapters import PlatformAdapter, default_adapters
from feed.rankingFunnel import RankingFunnel
from feed.feedOrchestrator import FeedService

__version__ = "1.0.0"

# Public API
__all__ = [
    # Configuration
    'LoggingConfig',
    'RankingSettings',
    'SummarizerSettings',

    # Errors
    'FeedError',
    'OracleError',
    'StoreError',

    # Data types
    'BehaviorEvent',
    'BehaviorSummary',
    'FeedRules',
    'NormalizedPost',
    'OracleResponse',
    'PlatformConnection',
    'RankedResult',
    'RankingContext',

    # Components
    'BehaviorSummarizer',
    'summarize_events',
    'ContentNormalizer',
    'validate_normalized_post',
    'PlatformAdapter',
    'default_adapters',
    'RankingFunnel',
    'FeedService',
]
