"""
Content filtering functions for the ranking funnel.
"""
import os
import logging
from typing import Iterable, List, Optional, Set

from feed.config import DEFAULT_BLOCKLIST
from feed.models import FeedRules, NormalizedPost

logger = logging.getLogger(__name__)


def default_blocklist_path() -> str:
    return os.path.join(
        os.path.dirname(os.path.dirname(os.path.abspath(__file__))),
        'moderation', 'blocklist.txt'
    )


def load_blocklist(path: Optional[str] = None) -> Set[str]:
    """
    Load blocked terms from a moderation file (one term per line, ``#`` comments)

    Args:
        path: File location, defaults to moderation/blocklist.txt at the repo root

    Returns:
        Lowercased terms, empty when the file is missing or unreadable
    """
    try:
        moderation_file = path or default_blocklist_path()

        if not os.path.exists(moderation_file):
            logger.debug(f"Moderation file not found: {moderation_file}")
            return set()

        with open(moderation_file, 'r', encoding='utf-8') as f:
            terms = {
                line.strip().lower() for line in f
                if line.strip() and not line.strip().startswith('#')
            }

        logger.info(f"Loaded {len(terms):,} blocked terms for moderation")
        return terms

    except Exception as e:
        logger.error(f"Failed to load moderation file: {e}")
        return set()


def resolve_blocklist(feed_rules: Optional[FeedRules], extra_terms: Iterable[str] = ()) -> List[str]:
    """Feed-rule blocklist (or the built-in one) merged with moderation file terms"""
    base = feed_rules.blocklist if feed_rules and feed_rules.blocklist else DEFAULT_BLOCKLIST
    merged = []
    for term in list(base) + sorted(extra_terms):
        term = (term or '').strip().lower()
        if term and term not in merged:
            merged.append(term)
    return merged


def is_blocked(post: NormalizedPost, blocklist: List[str]) -> bool:
    text = (post.text or '').lower()
    tags = [tag.lower() for tag in post.tags]
    for term in blocklist:
        if term in text or any(term in tag for tag in tags):
            return True
    return False


def filter_blocked_posts(posts: List[NormalizedPost], blocklist: List[str]) -> List[NormalizedPost]:
    """Drop posts whose text or tags contain a blocked term (case-insensitive substring)"""
    if not blocklist:
        return posts

    original_count = len(posts)
    filtered_posts = [post for post in posts if not is_blocked(post, blocklist)]

    blocked_count = original_count - len(filtered_posts)
    if blocked_count > 0:
        filter_rate = blocked_count / original_count * 100
        logger.info(f"Moderation: blocked {blocked_count}/{original_count} posts ({filter_rate:.1f}%)")

    return filtered_posts


def filter_empty_posts(posts: List[NormalizedPost]) -> List[NormalizedPost]:
    """Drop posts without any text"""
    filtered_posts = [post for post in posts if post.text and post.text.strip()]

    empty_count = len(posts) - len(filtered_posts)
    if empty_count > 0:
        logger.info(f"Filtered {empty_count} empty posts from {len(posts)} total posts")

    return filtered_posts
