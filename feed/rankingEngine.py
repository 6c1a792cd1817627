"""
Scoring functions for the ranking funnel.
"""
import logging
from datetime import datetime, timezone
from typing import Dict, List, Optional

import numpy as np

from feed.config import BoostWeights, EngagementWeights, HeuristicWeights
from feed.models import BehaviorSummary, NormalizedPost

logger = logging.getLogger(__name__)

FRESH_POST_HOURS = 24


def calculate_post_age_hours(post: NormalizedPost, now: Optional[datetime] = None) -> float:
    """
    Calculate post age in hours from timePublished

    Args:
        post: Normalized post
        now: Reference time (defaults to the current UTC time)

    Returns:
        Non-negative age in hours
    """
    now = now or datetime.now(timezone.utc)
    age_delta = now - post.published_at
    return max(0.0, age_delta.total_seconds() / 3600.0)


def recency_hours(post: NormalizedPost) -> float:
    """Hours since the Unix epoch, so newer posts score higher"""
    return post.published_at.timestamp() / 3600.0


def weighted_engagement(post: NormalizedPost) -> float:
    stats = post.stats
    return (
        stats.likes * EngagementWeights.LIKES
        + stats.comments * EngagementWeights.COMMENTS
        + stats.shares * EngagementWeights.SHARES
    )


def matching_boost_tags(post: NormalizedPost, boost_tags: List[str]) -> List[str]:
    """Post tags contained in any boost tag (case-insensitive)"""
    boosts = [boost.lower() for boost in boost_tags if boost]
    if not boosts:
        return []
    return [
        tag for tag in post.tags
        if tag and any(tag.lower() in boost for boost in boosts)
    ]


def calculate_boost_score(post: NormalizedPost, boost_tags: List[str], summary: BehaviorSummary) -> float:
    """
    Affinity boost of one post for one user

    Args:
        post: Candidate post
        boost_tags: Tags to favor
        summary: User behavior summary

    Returns:
        Boost score (tag, creator, format and engagement tier contributions)
    """
    score = len(matching_boost_tags(post, boost_tags)) * BoostWeights.TAG_MATCH

    if post.creator.handle in summary.top_creators:
        score += BoostWeights.CREATOR_MATCH

    if post.type in summary.preferred_content_types:
        score += BoostWeights.TYPE_MATCH

    total_engagement = post.stats.total_engagement
    if total_engagement > BoostWeights.ENGAGEMENT_TIER_1_THRESHOLD:
        score += BoostWeights.ENGAGEMENT_TIER_1
    if total_engagement > BoostWeights.ENGAGEMENT_TIER_2_THRESHOLD:
        score += BoostWeights.ENGAGEMENT_TIER_2

    return float(score)


def calculate_boost_scores(posts: List[NormalizedPost], boost_tags: List[str],
                           summary: BehaviorSummary) -> Dict[str, float]:
    """Boost score per post id; posts that cannot be scored get 0"""
    scores = {}
    for post in posts:
        try:
            scores[post.id] = calculate_boost_score(post, boost_tags, summary)
        except Exception as e:
            logger.debug(f"Could not score boost for post {post.id}: {e}")
            scores[post.id] = 0.0
    return scores


def heuristic_score(post: NormalizedPost, boost_score: float) -> float:
    return (
        HeuristicWeights.RECENCY * recency_hours(post)
        + HeuristicWeights.ENGAGEMENT * float(np.log1p(weighted_engagement(post)))
        + HeuristicWeights.BOOST * boost_score
    )


def sort_by_recency(posts: List[NormalizedPost]) -> List[NormalizedPost]:
    """Newest first; posts published at the same moment keep their input order"""
    return sorted(posts, key=lambda post: post.published_at, reverse=True)


def heuristic_rank(posts: List[NormalizedPost], boost_scores: Dict[str, float]) -> List[NormalizedPost]:
    """Stable descending sort by recency + log engagement + boost"""
    scores = {post.id: heuristic_score(post, boost_scores.get(post.id, 0.0)) for post in posts}
    return sorted(posts, key=lambda post: scores[post.id], reverse=True)


def reason_codes(post: NormalizedPost, boost_tags: List[str], summary: BehaviorSummary,
                 now: Optional[datetime] = None) -> List[str]:
    """Deterministic reasons a post ranked where it did"""
    reasons = []
    if matching_boost_tags(post, boost_tags):
        reasons.append('tag_match')
    if post.creator.handle in summary.top_creators:
        reasons.append('creator_match')
    if post.type in summary.preferred_content_types:
        reasons.append('format_match')
    if post.stats.total_engagement > BoostWeights.ENGAGEMENT_TIER_1_THRESHOLD:
        reasons.append('high_engagement')
    if post.type == 'short':
        reasons.append('short_format_fit')
    if calculate_post_age_hours(post, now) < FRESH_POST_HOURS:
        reasons.append('fresh')
    return reasons


def calculate_diversity_score(posts: List[NormalizedPost]) -> float:
    """Half format variety (out of at most five formats), half creator variety"""
    if not posts:
        return 0.0
    distinct_types = len({post.type for post in posts})
    distinct_creators = len({post.creator.handle for post in posts})
    score = 0.5 * distinct_types / min(5, len(posts)) + 0.5 * distinct_creators / len(posts)
    return min(1.0, max(0.0, score))
