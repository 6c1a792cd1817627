"""
Cache management functions for behavior summaries and ranked feeds.

Every helper treats the cache as an optimization: read failures behave like a
miss and write failures are logged and reported as False.
"""
import logging
from typing import Optional

from feed.config import RANKED_FEED_CACHE_TTL_SECONDS, SUMMARY_CACHE_TTL_SECONDS, TIMEFRAME_DAYS
from feed.models import BehaviorSummary, RankedResult

logger = logging.getLogger(__name__)


def summary_cache_key(user_id: str, timeframe: str) -> str:
    return f"summary:{user_id}:{timeframe}"


def ranked_feed_cache_key(user_id: str, limit: int, offset: int, intent: str, mode: str) -> str:
    return f"ranked_feed:{user_id}:{limit}:{offset}:{intent}:{mode}"


def get_cached_summary(cache, user_id: str, timeframe: str) -> Optional[BehaviorSummary]:
    """Load a cached summary, or None on miss or unreadable payload"""
    if cache is None:
        return None
    try:
        data = cache.get(summary_cache_key(user_id, timeframe))
        if not data:
            return None
        return BehaviorSummary.from_dict(data)
    except Exception as e:
        logger.error(f"Error reading cached summary for user {user_id}: {e}")
        return None


def cache_summary(cache, user_id: str, timeframe: str, summary: BehaviorSummary,
                  ttl: int = SUMMARY_CACHE_TTL_SECONDS) -> bool:
    if cache is None:
        return False
    try:
        return bool(cache.set_with_ttl(summary_cache_key(user_id, timeframe), summary.to_dict(), ttl))
    except Exception as e:
        logger.error(f"Error caching summary for user {user_id}: {e}")
        return False


def invalidate_summaries(cache, user_id: str) -> bool:
    """Drop the cached summary of every timeframe for a user"""
    if cache is None:
        return False
    try:
        keys = [summary_cache_key(user_id, timeframe) for timeframe in TIMEFRAME_DAYS]
        cache.delete(*keys)
        logger.debug(f"Invalidated {len(keys)} summary keys for user {user_id}")
        return True
    except Exception as e:
        logger.error(f"Error invalidating summaries for user {user_id}: {e}")
        return False


def get_cached_feed(cache, key: str) -> Optional[RankedResult]:
    if cache is None:
        return None
    try:
        data = cache.get(key)
        if not data:
            return None
        result = RankedResult.from_dict(data)
        result.cached = True
        return result
    except Exception as e:
        logger.error(f"Error reading cached feed {key}: {e}")
        return None


def cache_ranked_feed(cache, key: str, result: RankedResult,
                      ttl: int = RANKED_FEED_CACHE_TTL_SECONDS) -> bool:
    if cache is None:
        return False
    try:
        success = bool(cache.set_with_ttl(key, result.to_dict(), ttl))
        if success:
            logger.info(f"Cached ranked feed {key}: {len(result.posts)} posts")
        return success
    except Exception as e:
        logger.error(f"Error caching ranked feed {key}: {e}")
        return False
