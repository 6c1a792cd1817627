"""
Human-readable explanations for ranked posts.

Explanations are built only from deterministic reason codes so they remain
available when the ranking oracle is down.
"""
import logging
from datetime import datetime
from typing import Dict, List, Optional

from feed.models import BehaviorSummary, NormalizedPost
from feed.rankingEngine import matching_boost_tags, reason_codes

logger = logging.getLogger(__name__)

REASON_PHRASES = {
    'tag_match': 'matches your interest in {tag}',
    'creator_match': 'comes from a creator you engage with often',
    'format_match': 'is a format you often choose',
    'high_engagement': 'has high engagement',
    'short_format_fit': 'is perfect for quick viewing',
    'fresh': 'was published recently',
}


def build_explanation(reasons: List[str], action: str = 'recommended', tag: Optional[str] = None) -> str:
    """
    Render reason codes into one sentence

    Args:
        reasons: Reason codes in priority order
        action: Verb describing what happened to the post
        tag: Matching tag used by the ``tag_match`` phrase

    Returns:
        Explanation sentence
    """
    phrases = [
        REASON_PHRASES[reason].format(tag=tag or 'this topic')
        for reason in reasons if reason in REASON_PHRASES
    ]
    if not phrases:
        return f"This post was {action} based on your activity patterns."
    return f"This post was {action} because it {' and '.join(phrases)}."


def generate_explanations(posts: List[NormalizedPost], summary: BehaviorSummary, boost_tags: List[str],
                          limit: int = 5, now: Optional[datetime] = None) -> Dict[str, str]:
    """Explanation per post id for the first ``limit`` posts"""
    explanations = {}
    for post in posts[:limit]:
        try:
            matches = matching_boost_tags(post, boost_tags)
            reasons = reason_codes(post, boost_tags, summary, now)
            explanations[post.id] = build_explanation(reasons, tag=matches[0] if matches else None)
        except Exception as e:
            logger.debug(f"Could not explain post {post.id}: {e}")
            explanations[post.id] = build_explanation([])
    return explanations
