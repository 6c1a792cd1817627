"""
Feed orchestration - request-level flow from connected platforms to a ranked feed.
"""
import logging
import math
import threading
from typing import Callable, Dict, List, Optional

from feed.behaviorSummarizer import BehaviorSummarizer
from feed.cacheManager import get_cached_feed, ranked_feed_cache_key
from feed.config import (
    DEFAULT_FEED_LIMIT, DEFAULT_INTENT, DEFAULT_SESSION_MODE, FETCH_OVERSAMPLE_FACTOR,
    MAX_FEED_CANDIDATES, MAX_FEED_LIMIT, SESSION_MODES, ConfidenceScores
)
from feed.contentFilters import filter_empty_posts
from feed.contentNormalizer import ContentNormalizer
from feed.models import BehaviorEvent, FeedRules, PlatformConnection, RankedResult
from feed.postCollector import collect_platform_posts
from feed.rankingEngine import sort_by_recency
from feed.rankingFunnel import RankingFunnel, build_session_insights

logger = logging.getLogger(__name__)

NO_CONTENT_MESSAGE = "No content available. Please connect social media accounts."


def clamp_limit(limit) -> int:
    try:
        limit = int(limit)
    except (TypeError, ValueError):
        return DEFAULT_FEED_LIMIT
    return min(max(1, limit), MAX_FEED_LIMIT)


def resolve_mode(mode: Optional[str]) -> str:
    return mode if mode in SESSION_MODES else DEFAULT_SESSION_MODE


class FeedService:
    """
    Builds ranked feeds and ingests behavior events

    Args:
        summarizer: BehaviorSummarizer
        funnel: RankingFunnel
        normalizer: ContentNormalizer
        fetchers: Feed fetcher per platform name
        cache: Provides ``get``; may be None
        connection_store: Provides ``get_connected_platforms(user_id)``; may be None
        background_updates: Run summary updates on a background thread
    """

    def __init__(self, summarizer: BehaviorSummarizer, funnel: RankingFunnel, normalizer: ContentNormalizer,
                 fetchers: Dict[str, Callable], cache=None, connection_store=None, background_updates: bool = True):
        self.summarizer = summarizer
        self.funnel = funnel
        self.normalizer = normalizer
        self.fetchers = fetchers
        self.cache = cache
        self.connection_store = connection_store
        self.background_updates = background_updates

    def get_feed(self, user_id: str, connections: Optional[List[PlatformConnection]] = None,
                 limit: int = DEFAULT_FEED_LIMIT, offset: int = 0, intent: str = DEFAULT_INTENT,
                 mode: str = DEFAULT_SESSION_MODE, feed_rules: Optional[FeedRules] = None) -> RankedResult:
        """
        Ranked feed for a user, served from cache when fresh

        Args:
            user_id: User identifier
            connections: Platform connections (loaded from the profile store when None)
            limit: Window size (1-100)
            offset: Window start
            intent: Requested intent
            mode: Session mode
            feed_rules: Optional blocklist and boost tags

        Returns:
            RankedResult
        """
        limit = clamp_limit(limit)
        offset = max(0, int(offset or 0))
        intent = intent or DEFAULT_INTENT
        mode = resolve_mode(mode)

        cache_key = ranked_feed_cache_key(user_id, limit, offset, intent, mode)
        cached = get_cached_feed(self.cache, cache_key)
        if cached is not None:
            logger.info(f"Serving cached feed for user {user_id}: {len(cached.posts)} posts")
            return cached

        if connections is None:
            connections = self._load_connections(user_id)

        fetch_limit = math.ceil(limit * FETCH_OVERSAMPLE_FACTOR)
        posts = collect_platform_posts(connections, self.fetchers, self.normalizer, fetch_limit)
        posts = sort_by_recency(filter_empty_posts(posts))[:MAX_FEED_CANDIDATES]

        summary = self.summarizer.generate_summary(user_id)

        if not posts:
            logger.info(f"No posts collected for user {user_id}")
            return RankedResult(
                session_optimization='balanced',
                confidence_score=ConfidenceScores.EMPTY,
                session_insights=build_session_insights(summary, mode),
                message=NO_CONTENT_MESSAGE,
            )

        return self.funnel.rank_and_decide(
            user_id, summary, posts,
            intent=intent, session_mode=mode, limit=limit, offset=offset, feed_rules=feed_rules,
        )

    def record_events(self, user_id: str, events: List[Dict]) -> int:
        """
        Validate events and hand them to the summarizer update path

        Invalid events are logged and skipped. The update itself never blocks
        or fails the caller.

        Returns:
            Number of accepted events
        """
        accepted = []
        for raw_event in events or []:
            try:
                event = raw_event if isinstance(raw_event, BehaviorEvent) else BehaviorEvent.from_dict(raw_event, user_id=user_id)
                accepted.append(event)
            except (ValueError, TypeError, AttributeError) as e:
                logger.warning(f"Skipping invalid event for user {user_id}: {e}")

        if not accepted:
            return 0

        if self.background_updates:
            thread = threading.Thread(
                target=self.summarizer.update_user_summary,
                args=(user_id, accepted),
                name=f"SummaryUpdate-{user_id}",
                daemon=True,
            )
            thread.start()
        else:
            self.summarizer.update_user_summary(user_id, accepted)

        logger.info(f"Accepted {len(accepted)} events for user {user_id}")
        return len(accepted)

    def _load_connections(self, user_id: str) -> List[PlatformConnection]:
        if self.connection_store is None:
            return []
        try:
            return self.connection_store.get_connected_platforms(user_id)
        except Exception as e:
            logger.error(f"Failed to load connected platforms for user {user_id}: {e}")
            return []
