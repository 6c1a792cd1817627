"""
Post collection from a user's connected platforms.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, Dict, List

from feed.config import MAX_PLATFORM_WORKERS
from feed.contentNormalizer import ContentNormalizer
from feed.models import NormalizedPost, PlatformConnection

logger = logging.getLogger(__name__)


def fetch_platform_posts(connection: PlatformConnection, fetcher: Callable, normalizer: ContentNormalizer,
                         limit: int) -> List[NormalizedPost]:
    """Fetch and normalize one platform; raises on fetch failure"""
    credentials = {'access_token': connection.access_token, **connection.credentials}
    raw_posts = fetcher(credentials, limit) or []
    posts = normalizer.normalize_many(raw_posts, connection.platform)
    logger.info(f"Fetched {len(posts)} posts from {connection.platform}")
    return posts


def collect_platform_posts(connections: List[PlatformConnection], fetchers: Dict[str, Callable],
                           normalizer: ContentNormalizer, limit: int) -> List[NormalizedPost]:
    """
    Fetch every active connected platform concurrently

    A failing platform is logged and contributes nothing; the others are
    unaffected.

    Args:
        connections: The user's platform connections
        fetchers: Feed fetcher per platform name
        normalizer: Content normalizer
        limit: Posts to request per platform

    Returns:
        Normalized posts from all platforms, grouped in connection order
    """
    active = [
        connection for connection in connections
        if connection.is_active and connection.platform in fetchers
    ]
    skipped = len(connections) - len(active)
    if skipped:
        logger.info(f"Skipping {skipped} inactive or unsupported platform connections")

    if not active:
        return []

    results: Dict[int, List[NormalizedPost]] = {}
    with ThreadPoolExecutor(max_workers=min(len(active), MAX_PLATFORM_WORKERS)) as executor:
        futures = {
            executor.submit(fetch_platform_posts, connection, fetchers[connection.platform], normalizer, limit): index
            for index, connection in enumerate(active)
        }
        for future in as_completed(futures):
            index = futures[future]
            try:
                results[index] = future.result()
            except Exception as e:
                logger.error(f"Error fetching from {active[index].platform}: {e}")
                results[index] = []

    all_posts = []
    for index in range(len(active)):
        all_posts.extend(results.get(index, []))

    logger.info(f"Collected {len(all_posts)} posts from {len(active)} platforms")
    return all_posts
