"""
Ranking funnel - pre-filter, boost, heuristic order, oracle rerank, explain, cache.

The funnel degrades in stages: an oracle failure keeps the heuristic order,
and any other failure after the safety filter falls back to a heuristic
order recomputed from recency, engagement and boost.
"""
import logging
from typing import Dict, List, Optional

from feed.cacheManager import cache_ranked_feed, ranked_feed_cache_key
from feed.config import (
    DEFAULT_BOOST_TAG_COUNT, DEFAULT_INTENT, DEFAULT_SESSION_MODE, DEFAULT_FEED_LIMIT,
    ORACLE_MAX_TAGS_PER_CANDIDATE, ORACLE_TEXT_PREVIEW_CHARS, SESSION_MODES,
    ConfidenceScores, RankingSettings
)
from feed.contentFilters import filter_blocked_posts, load_blocklist, resolve_blocklist
from feed.explanations import generate_explanations
from feed.models import (
    BehaviorSummary, EngagementPatterns, FeedRules, NormalizedPost, RankedResult,
    RankingContext, validate_oracle_response
)
from feed.rankingEngine import (
    calculate_boost_scores, calculate_diversity_score, heuristic_rank, sort_by_recency
)

logger = logging.getLogger(__name__)

EMPTY_AFTER_FILTER_MESSAGE = "No content available after filtering."

# Engagement style label sent to the oracle, first match wins
ORACLE_ENGAGEMENT_STYLES = [
    (lambda patterns: patterns.like_rate > 0.3, 'active_engager'),
    (lambda patterns: patterns.share_rate > 0.1, 'content_sharer'),
    (lambda patterns: patterns.comment_rate > 0.05, 'discussion_participant'),
    (lambda patterns: patterns.skip_rate > 0.7, 'content_browser'),
]


def describe_engagement_style(patterns: EngagementPatterns) -> str:
    for predicate, label in ORACLE_ENGAGEMENT_STYLES:
        if predicate(patterns):
            return label
    return 'casual_viewer'


def resolve_session_optimization(summary: BehaviorSummary, session_mode: str) -> str:
    if session_mode in SESSION_MODES:
        return session_mode
    speed = summary.scroll_behavior.scroll_speed
    if speed == 'fast':
        return 'quick_hits'
    if speed == 'slow':
        return 'deep_dive'
    return 'balanced'


def suggest_session_duration(summary: BehaviorSummary) -> str:
    avg_duration = summary.avg_session_duration_seconds
    if avg_duration < 300:
        return 'short (5-10 min)'
    if avg_duration < 900:
        return 'medium (15-20 min)'
    return 'extended (30+ min)'


def build_session_insights(summary: BehaviorSummary, session_mode: str) -> Dict:
    speed = summary.scroll_behavior.scroll_speed

    next_actions = []
    if summary.engagement_patterns.like_rate > 0.2:
        next_actions.append('Share your favorite content')
    if summary.total_events > 100:
        next_actions.append('Create a post about your interests')
    next_actions.append('Explore trending topics')

    return {
        'mode': session_mode,
        'suggestedDuration': suggest_session_duration(summary),
        'contentMix': {
            'shorts': 70 if speed == 'fast' else 40,
            'longform': 50 if speed == 'slow' else 30,
            'interactive': 20,
            'trending': 10,
        },
        'nextActions': next_actions,
    }


def build_oracle_payload(context: RankingContext, boost_scores: Dict[str, float]) -> Dict:
    """Compact context sent to the ranking oracle"""
    summary = context.summary
    return {
        'userContextSummary': {
            'top_tags': summary.top_tags[:5],
            'scroll_behavior': summary.scroll_behavior.scroll_speed,
            'engagement_style': describe_engagement_style(summary.engagement_patterns),
            'mood': summary.mood_indicators[0] if summary.mood_indicators else 'neutral',
            'request_intent': context.intent,
        },
        'candidateSummaries': [
            {
                'id': post.id,
                'type': post.type,
                'tags': post.tags[:ORACLE_MAX_TAGS_PER_CANDIDATE],
                'creator': post.creator.handle,
                'platform': post.platform,
                'stats': post.stats.to_dict(),
                'aiBoostScore': boost_scores.get(post.id, 0.0),
                'text_preview': post.text[:ORACLE_TEXT_PREVIEW_CHARS],
            }
            for post in context.candidates
        ],
        'intent': context.intent,
        'sessionMode': context.session_mode,
    }


def apply_oracle_order(posts: List[NormalizedPost], order: List[str]) -> List[NormalizedPost]:
    """
    Reorder posts by oracle ids

    Unknown and repeated ids are ignored; posts the oracle did not mention
    follow in their existing order.
    """
    by_id = {post.id: post for post in posts}
    placed = set()
    reordered = []

    for post_id in order:
        post_id = str(post_id)
        if post_id in by_id and post_id not in placed:
            placed.add(post_id)
            reordered.append(by_id[post_id])

    reordered.extend(post for post in posts if post.id not in placed)
    return reordered


def dedupe_posts(posts: List[NormalizedPost]) -> List[NormalizedPost]:
    seen = set()
    unique_posts = []
    for post in posts:
        if post.id not in seen:
            seen.add(post.id)
            unique_posts.append(post)
    return unique_posts


class RankingFunnel:
    """
    Multi-stage ranking of normalized candidates for one user

    Args:
        oracle: Provides ``rerank(payload)``; None disables the oracle stage
        cache: Provides ``set_with_ttl``; may be None
        post_store: Provides ``upsert_posts(posts, user_id)``; may be None
        settings: Funnel limits
    """

    def __init__(self, oracle=None, cache=None, post_store=None, settings: Optional[RankingSettings] = None):
        self.oracle = oracle
        self.cache = cache
        self.post_store = post_store
        self.settings = settings or RankingSettings()
        self.moderation_terms = load_blocklist(self.settings.blocklist_file or None)

    def rank_and_decide(self, user_id: str, summary: Optional[BehaviorSummary], candidates: List[NormalizedPost],
                        intent: str = DEFAULT_INTENT, session_mode: str = DEFAULT_SESSION_MODE,
                        limit: int = DEFAULT_FEED_LIMIT, offset: int = 0,
                        feed_rules: Optional[FeedRules] = None) -> RankedResult:
        """
        Rank candidates for a user and return the requested window

        Args:
            user_id: User identifier
            summary: Behavior summary (default summary when None)
            candidates: Normalized candidate posts
            intent: Requested intent
            session_mode: Requested session mode
            limit: Window size
            offset: Window start
            feed_rules: Optional blocklist and boost tags

        Returns:
            RankedResult; empty with a message when nothing survives filtering
        """
        summary = summary or BehaviorSummary.default()
        limit = max(0, int(limit))
        offset = max(0, int(offset))

        ordered = sort_by_recency(dedupe_posts(candidates or []))
        blocklist = resolve_blocklist(feed_rules, self.moderation_terms)
        survivors = filter_blocked_posts(ordered, blocklist)

        session_optimization = resolve_session_optimization(summary, session_mode)
        session_insights = build_session_insights(summary, session_mode)

        if not survivors:
            logger.info(f"No candidates left after filtering for user {user_id}")
            return RankedResult(
                session_optimization=session_optimization,
                confidence_score=ConfidenceScores.EMPTY,
                session_insights=session_insights,
                message=EMPTY_AFTER_FILTER_MESSAGE,
            )

        boost_tags = self._boost_tags(summary, feed_rules)
        context = RankingContext(
            user_id=user_id,
            summary=summary,
            candidates=survivors,
            intent=intent,
            session_mode=session_mode,
        )

        try:
            ranked, oracle_used = self._rank(context, boost_tags)
            window = ranked[offset:offset + limit]
            explanations = generate_explanations(window, summary, boost_tags, self.settings.max_explanations)
        except Exception as e:
            logger.error(f"Ranking failed for user {user_id}, using heuristic fallback: {e}")
            ranked = self._fallback_rank(survivors, boost_tags, summary)
            oracle_used = False
            window = ranked[offset:offset + limit]
            try:
                explanations = generate_explanations(window, summary, boost_tags, self.settings.max_explanations)
            except Exception as e:
                logger.warning(f"Explanations unavailable for user {user_id}: {e}")
                explanations = {}

        if not window:
            confidence = ConfidenceScores.EMPTY
        elif oracle_used:
            confidence = ConfidenceScores.ORACLE
        else:
            confidence = ConfidenceScores.HEURISTIC

        result = RankedResult(
            posts=window,
            explanations=explanations,
            diversity_score=calculate_diversity_score(window),
            session_optimization=session_optimization,
            confidence_score=confidence,
            oracle_used=oracle_used,
            total_available=len(survivors),
            session_insights=session_insights,
        )

        logger.info(f"Ranked {len(survivors)} candidates for user {user_id}: "
                    f"returning {len(window)} (oracle={'yes' if oracle_used else 'no'})")

        key = ranked_feed_cache_key(user_id, limit, offset, intent, session_mode)
        cache_ranked_feed(self.cache, key, result, self.settings.cache_ttl_seconds)
        self._store_seen_posts(window, user_id)

        return result

    def _boost_tags(self, summary: BehaviorSummary, feed_rules: Optional[FeedRules]) -> List[str]:
        if feed_rules and feed_rules.boost_tags:
            return list(feed_rules.boost_tags)
        return summary.top_tags[:DEFAULT_BOOST_TAG_COUNT]

    def _rank(self, context: RankingContext, boost_tags: List[str]):
        """Heuristic order with the head optionally reranked by the oracle"""
        boost_scores = calculate_boost_scores(context.candidates, boost_tags, context.summary)
        ranked = heuristic_rank(context.candidates, boost_scores)

        # Only the head goes to the oracle; the tail keeps heuristic order
        head, tail = ranked, []
        if len(ranked) > self.settings.prerank_trigger:
            head, tail = ranked[:self.settings.prerank_keep], ranked[self.settings.prerank_keep:]
            logger.info(f"Heuristic pre-rank: {len(ranked)} -> {len(head)} oracle candidates")

        if self.oracle is None:
            return head + tail, False

        head_context = RankingContext(
            user_id=context.user_id,
            summary=context.summary,
            candidates=head,
            intent=context.intent,
            session_mode=context.session_mode,
        )

        try:
            response = validate_oracle_response(self.oracle.rerank(build_oracle_payload(head_context, boost_scores)))
        except Exception as e:
            logger.warning(f"Oracle rerank unavailable, keeping heuristic order: {e}")
            return head + tail, False

        known_ids = {post.id for post in head}
        if not any(str(post_id) in known_ids for post_id in response.order):
            logger.warning("Oracle order matched no candidates, keeping heuristic order")
            return head + tail, False

        if response.notes:
            logger.debug(f"Oracle notes: {response.notes}")

        return apply_oracle_order(head, response.order) + tail, True

    def _fallback_rank(self, posts: List[NormalizedPost], boost_tags: List[str],
                       summary: BehaviorSummary) -> List[NormalizedPost]:
        try:
            boost_scores = calculate_boost_scores(posts, boost_tags, summary)
        except Exception as e:
            logger.debug(f"Boost scoring failed during fallback: {e}")
            boost_scores = {}

        try:
            return heuristic_rank(posts, boost_scores)
        except Exception as e:
            logger.error(f"Heuristic fallback failed, using recency order: {e}")
            return list(posts)

    def _store_seen_posts(self, posts: List[NormalizedPost], user_id: str):
        if self.post_store is None or not posts:
            return
        try:
            self.post_store.upsert_posts(posts, user_id)
        except Exception as e:
            logger.error(f"Failed to store seen posts for user {user_id}: {e}")
