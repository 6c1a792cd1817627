"""
Behavior summarization - turns raw interaction events into a BehaviorSummary.
"""
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Callable, Dict, Iterable, List, Optional, Tuple

import numpy as np

from feed.cacheManager import cache_summary, get_cached_summary, invalidate_summaries
from feed.config import (
    DEFAULT_TIMEFRAME, MAX_PEAK_HOURS, MAX_PREFERRED_CONTENT_TYPES,
    MAX_TOP_CREATORS, MAX_TOP_TAGS, TIMEFRAME_DAYS, SummarizerSettings
)
from feed.models import BehaviorEvent, BehaviorSummary, EngagementPatterns, ScrollBehavior

logger = logging.getLogger(__name__)

SummaryRule = Tuple[Callable[[EngagementPatterns, int], bool], str]

# Evaluated independently; every rule that fires contributes its tag
MOOD_RULES: List[SummaryRule] = [
    (lambda patterns, total: patterns.skip_rate > 0.7, 'quick_hits'),
    (lambda patterns, total: patterns.like_rate > 0.3, 'engaged'),
    (lambda patterns, total: total < 50, 'passive'),
    (lambda patterns, total: total > 200, 'exploratory'),
]

# First matching rule wins
ENGAGEMENT_STYLE_RULES: List[Tuple[Callable[[EngagementPatterns], bool], str]] = [
    (lambda patterns: patterns.skip_rate > 0.7, 'browser'),
    (lambda patterns: patterns.like_rate > 0.3, 'engager'),
    (lambda patterns: patterns.share_rate > 0.1, 'sharer'),
    (lambda patterns: patterns.comment_rate > 0.05, 'commenter'),
]

ENGAGEMENT_STRATEGY_RULES: List[Tuple[Callable[[BehaviorSummary], bool], List[str]]] = [
    (lambda s: s.scroll_behavior.scroll_speed == 'fast', ['short_form_content', 'eye_catching_visuals']),
    (lambda s: s.engagement_patterns.like_rate > 0.2, ['interactive_content', 'polls_and_questions']),
    (lambda s: len(s.peak_activity_hours) > 0, ['optimal_timing', 'scheduled_content']),
]

UI_OPTIMIZATION_RULES: List[Tuple[Callable[[BehaviorSummary], bool], List[str]]] = [
    (lambda s: s.scroll_behavior.scroll_speed == 'fast', ['compact_layout', 'quick_actions']),
    (lambda s: s.avg_session_duration_seconds > 600, ['deep_content_mode', 'reading_optimized']),
    (lambda s: s.engagement_patterns.skip_rate > 0.6, ['better_filtering', 'personalized_feed']),
]


def resolve_timeframe(timeframe: Optional[str]) -> str:
    if timeframe in TIMEFRAME_DAYS:
        return timeframe
    if timeframe:
        logger.debug(f"Unknown timeframe {timeframe!r}, using {DEFAULT_TIMEFRAME}")
    return DEFAULT_TIMEFRAME


def safe_rate(numerator: float, denominator: float) -> float:
    """Ratio clamped to [0, 1]; a zero denominator yields 0"""
    if denominator <= 0:
        return 0.0
    return min(1.0, max(0.0, numerator / denominator))


def _is_countable(value) -> bool:
    """Free-form metadata values are tallied only when they are non-empty strings or ints"""
    return isinstance(value, (str, int)) and not isinstance(value, bool) and value != ''


def top_by_frequency(values: Iterable, limit: int) -> List:
    """Most frequent values, ties kept in first-seen order"""
    counts = Counter(values)
    ranked = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return [value for value, _ in ranked[:limit]]


def split_sessions(events: List[BehaviorEvent], gap_minutes: float) -> List[List[BehaviorEvent]]:
    """
    Group timestamp-sorted events into sessions

    A new session starts whenever the gap to the previous event exceeds
    ``gap_minutes``.
    """
    sessions: List[List[BehaviorEvent]] = []
    max_gap = timedelta(minutes=gap_minutes)

    for event in events:
        if sessions and event.timestamp - sessions[-1][-1].timestamp <= max_gap:
            sessions[-1].append(event)
        else:
            sessions.append([event])

    return sessions


def average_session_duration(sessions: List[List[BehaviorEvent]]) -> float:
    """Mean of (last - first) seconds across all sessions; single-event sessions count as 0"""
    if not sessions:
        return 0.0
    durations = [
        (session[-1].timestamp - session[0].timestamp).total_seconds() if len(session) > 1 else 0.0
        for session in sessions
    ]
    return float(np.mean(durations))


def calculate_engagement_patterns(events: List[BehaviorEvent]) -> EngagementPatterns:
    counts = Counter(event.event_type for event in events)
    views = counts['view']
    skips = counts['skip']
    likes = counts['like']
    shares = counts['share']
    comments = counts['comment']

    return EngagementPatterns(
        skip_rate=safe_rate(skips, views + skips),
        like_rate=safe_rate(likes, views),
        share_rate=safe_rate(shares, views),
        comment_rate=safe_rate(comments, views),
        engagement_rate=safe_rate(likes + comments + shares, views),
    )


def infer_mood(patterns: EngagementPatterns, total_events: int) -> List[str]:
    indicators = [tag for predicate, tag in MOOD_RULES if predicate(patterns, total_events)]
    return indicators or ['neutral']


def analyze_scroll_behavior(events: List[BehaviorEvent], settings: SummarizerSettings) -> ScrollBehavior:
    """Derive scroll speed and session types from the dwell time of view events"""
    dwell_times = [
        event.dwell_time_ms for event in events
        if event.event_type == 'view' and event.dwell_time_ms
    ]

    if not dwell_times:
        return ScrollBehavior()

    avg_dwell = float(np.mean(dwell_times))

    if avg_dwell < settings.fast_dwell_ms:
        scroll_speed = 'fast'
    elif avg_dwell > settings.slow_dwell_ms:
        scroll_speed = 'slow'
    else:
        scroll_speed = 'medium'

    session_types = []
    if scroll_speed == 'fast':
        session_types.append('browsing')
    if scroll_speed == 'slow':
        session_types.append('reading')
    if avg_dwell > settings.deep_dive_dwell_ms:
        session_types.append('deep_dive')

    return ScrollBehavior(
        avg_dwell_time_ms=avg_dwell,
        scroll_speed=scroll_speed,
        session_types=session_types or ['normal'],
    )


def summarize_events(events: List[BehaviorEvent], settings: Optional[SummarizerSettings] = None) -> BehaviorSummary:
    """
    Aggregate events into a behavioral profile

    Args:
        events: Interaction events in any order
        settings: Session and dwell thresholds

    Returns:
        BehaviorSummary (the default summary when there are no events)
    """
    if not events:
        return BehaviorSummary.default()

    settings = settings or SummarizerSettings()
    ordered = sorted(events, key=lambda event: event.timestamp)

    tags, creators, content_types = [], [], []
    for event in ordered:
        metadata = event.metadata if isinstance(event.metadata, dict) else {}
        event_tags = metadata.get('tags')
        if isinstance(event_tags, (list, tuple)):
            tags.extend(str(tag).lower() for tag in event_tags if _is_countable(tag))
        creator = metadata.get('creator')
        if _is_countable(creator):
            creators.append(creator)
        content_type = metadata.get('contentType') or metadata.get('content_type')
        if _is_countable(content_type):
            content_types.append(content_type)

    patterns = calculate_engagement_patterns(ordered)
    sessions = split_sessions(ordered, settings.session_gap_minutes)

    return BehaviorSummary(
        total_events=len(ordered),
        top_tags=top_by_frequency(tags, MAX_TOP_TAGS),
        top_creators=top_by_frequency(creators, MAX_TOP_CREATORS),
        preferred_content_types=top_by_frequency(content_types, MAX_PREFERRED_CONTENT_TYPES),
        avg_session_duration_seconds=average_session_duration(sessions),
        peak_activity_hours=top_by_frequency((event.timestamp.hour for event in ordered), MAX_PEAK_HOURS),
        engagement_patterns=patterns,
        mood_indicators=infer_mood(patterns, len(ordered)),
        scroll_behavior=analyze_scroll_behavior(ordered, settings),
    )


def categorize_activity_level(total_events: int) -> str:
    if total_events < 50:
        return 'light'
    if total_events < 200:
        return 'moderate'
    return 'heavy'


def categorize_engagement_style(patterns: EngagementPatterns) -> str:
    for predicate, style in ENGAGEMENT_STYLE_RULES:
        if predicate(patterns):
            return style
    return 'observer'


def _collect(rules, summary: BehaviorSummary) -> List[str]:
    suggestions = []
    for predicate, items in rules:
        if predicate(summary):
            suggestions.extend(items)
    return suggestions


class BehaviorSummarizer:
    """
    Cache-first behavior summaries backed by the event store

    Args:
        event_store: Provides ``find_events(user_id, since)`` and ``insert_events(events)``
        cache: Provides ``get``/``set_with_ttl``/``delete``; may be None
        profile_store: Provides ``update_behavior_summary(user_id, summary)``; may be None
        settings: Session and dwell thresholds
    """

    def __init__(self, event_store, cache=None, profile_store=None, settings: Optional[SummarizerSettings] = None):
        self.event_store = event_store
        self.cache = cache
        self.profile_store = profile_store
        self.settings = settings or SummarizerSettings()

    def generate_summary(self, user_id: str, timeframe: Optional[str] = None) -> BehaviorSummary:
        """Summary for the timeframe; never raises, falls back to the default summary"""
        timeframe = resolve_timeframe(timeframe)

        cached = get_cached_summary(self.cache, user_id, timeframe)
        if cached is not None:
            logger.debug(f"Summary cache hit for user {user_id} ({timeframe})")
            return cached

        try:
            since = datetime.now(timezone.utc) - timedelta(days=TIMEFRAME_DAYS[timeframe])
            events = self.event_store.find_events(user_id, since)

            if not events:
                logger.info(f"No events for user {user_id} in {timeframe}, using default summary")
                return BehaviorSummary.default()

            summary = summarize_events(events, self.settings)
            cache_summary(self.cache, user_id, timeframe, summary, self.settings.cache_ttl_seconds)

            logger.info(f"Summarized {summary.total_events} events for user {user_id} ({timeframe})")
            return summary

        except Exception as e:
            logger.error(f"Error generating behavior summary for user {user_id}: {e}")
            return BehaviorSummary.default()

    def update_user_summary(self, user_id: str, new_events: List) -> bool:
        """
        Persist new events and roll the stored profile forward

        Failures are logged and swallowed so event ingestion never fails on
        the summary path.

        Returns:
            True if every step succeeded, False otherwise
        """
        try:
            events = [
                event if isinstance(event, BehaviorEvent) else BehaviorEvent.from_dict(event, user_id=user_id)
                for event in new_events or []
            ]
            if events:
                self.event_store.insert_events(events)

            invalidate_summaries(self.cache, user_id)

            summary = self.generate_summary(user_id, DEFAULT_TIMEFRAME)
            if self.profile_store is not None:
                self.profile_store.update_behavior_summary(user_id, summary)

            logger.info(f"Updated behavior summary for user {user_id} with {len(events)} new events")
            return True

        except Exception as e:
            logger.error(f"Error updating user behavior summary for {user_id}: {e}")
            return False

    def get_behavioral_insights(self, user_id: str, timeframe: Optional[str] = None) -> Dict:
        """Profile categories and recommendations derived from the user's summary"""
        summary = self.generate_summary(user_id, timeframe)
        return build_insights(summary)


def build_insights(summary: BehaviorSummary) -> Dict:
    return {
        'userProfile': {
            'activityLevel': categorize_activity_level(summary.total_events),
            'contentPreferences': {
                'primaryInterests': summary.top_tags[:5],
                'favoriteCreators': summary.top_creators[:3],
                'preferredFormats': list(summary.preferred_content_types),
            },
            'engagementStyle': categorize_engagement_style(summary.engagement_patterns),
            'sessionPatterns': {
                'avgDurationSeconds': summary.avg_session_duration_seconds,
                'peakHours': list(summary.peak_activity_hours),
                'scrollBehavior': summary.scroll_behavior.scroll_speed,
            },
        },
        'recommendations': {
            'optimalPostTiming': list(summary.peak_activity_hours),
            'contentSuggestions': list(summary.top_tags),
            'engagementStrategy': _collect(ENGAGEMENT_STRATEGY_RULES, summary),
            'uiOptimizations': _collect(UI_OPTIMIZATION_RULES, summary),
        },
    }
