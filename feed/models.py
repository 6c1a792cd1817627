"""
Shared data types for the feed ranking system.

Every type serializes to the camelCase JSON shape used by the cache, the
document store and the HTTP layer via ``to_dict()`` and is rebuilt from that
shape with ``from_dict()``.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from dateutil import parser
from pydantic import BaseModel, ValidationError, field_validator

from feed.config import EVENT_TYPES, POST_TYPES
from feed.exceptions import OracleError

logger = logging.getLogger(__name__)


def parse_timestamp(value) -> datetime:
    """
    Parse a timestamp into a timezone-aware datetime

    Args:
        value: datetime, ISO-8601 string or epoch seconds

    Returns:
        Aware datetime (naive input is treated as UTC)

    Raises:
        ValueError: if the value cannot be interpreted as a timestamp
    """
    if isinstance(value, datetime):
        parsed = value
    elif isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            parsed = datetime.fromtimestamp(value, tz=timezone.utc)
        except (OverflowError, OSError) as e:
            raise ValueError(f"Timestamp out of range: {value!r}") from e
    elif isinstance(value, str) and value.strip():
        try:
            parsed = parser.isoparse(value)
        except ValueError:
            parsed = parser.parse(value)
    else:
        raise ValueError(f"Unsupported timestamp: {value!r}")

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _non_negative_int(value) -> int:
    try:
        number = int(value or 0)
    except (TypeError, ValueError):
        return 0
    return max(0, number)


@dataclass(frozen=True)
class BehaviorEvent:
    """One user interaction with one post."""

    user_id: str
    post_id: str
    event_type: str
    timestamp: datetime
    dwell_time_ms: Optional[int] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    session_id: Optional[str] = None

    def __post_init__(self):
        if self.event_type not in EVENT_TYPES:
            raise ValueError(f"Unknown event type: {self.event_type!r}")
        object.__setattr__(self, 'timestamp', parse_timestamp(self.timestamp))
        if self.dwell_time_ms is not None:
            object.__setattr__(self, 'dwell_time_ms', _non_negative_int(self.dwell_time_ms))
        if not isinstance(self.metadata, dict):
            object.__setattr__(self, 'metadata', {})

    def to_dict(self) -> Dict[str, Any]:
        return {
            'userId': self.user_id,
            'postId': self.post_id,
            'eventType': self.event_type,
            'timestamp': self.timestamp.isoformat(),
            'dwellTimeMs': self.dwell_time_ms,
            'metadata': dict(self.metadata),
            'sessionId': self.session_id,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any], user_id: Optional[str] = None) -> 'BehaviorEvent':
        """Build an event from a stored row or an ingestion payload (``type``/``dwellTime`` aliases)."""
        dwell = data.get('dwellTimeMs', data.get('dwellTime', data.get('dwell_time_ms')))
        return cls(
            user_id=user_id or data.get('userId') or data.get('user_id', ''),
            post_id=data.get('postId') or data.get('post_id', ''),
            event_type=data.get('eventType') or data.get('type') or data.get('event_type', ''),
            timestamp=data.get('timestamp'),
            dwell_time_ms=dwell,
            metadata=data.get('metadata') or {},
            session_id=data.get('sessionId') or data.get('session_id'),
        )


@dataclass(frozen=True)
class EngagementPatterns:
    skip_rate: float = 0.0
    like_rate: float = 0.0
    share_rate: float = 0.0
    comment_rate: float = 0.0
    engagement_rate: float = 0.0

    def to_dict(self) -> Dict[str, float]:
        return {
            'skipRate': self.skip_rate,
            'likeRate': self.like_rate,
            'shareRate': self.share_rate,
            'commentRate': self.comment_rate,
            'engagementRate': self.engagement_rate,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'EngagementPatterns':
        return cls(
            skip_rate=float(data.get('skipRate', 0) or 0),
            like_rate=float(data.get('likeRate', 0) or 0),
            share_rate=float(data.get('shareRate', 0) or 0),
            comment_rate=float(data.get('commentRate', 0) or 0),
            engagement_rate=float(data.get('engagementRate', 0) or 0),
        )


@dataclass(frozen=True)
class ScrollBehavior:
    avg_dwell_time_ms: float = 0.0
    scroll_speed: str = 'medium'
    session_types: List[str] = field(default_factory=lambda: ['normal'])

    def to_dict(self) -> Dict[str, Any]:
        return {
            'avgDwellTimeMs': self.avg_dwell_time_ms,
            'scrollSpeed': self.scroll_speed,
            'sessionTypes': list(self.session_types),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ScrollBehavior':
        return cls(
            avg_dwell_time_ms=float(data.get('avgDwellTimeMs', 0) or 0),
            scroll_speed=data.get('scrollSpeed') or 'medium',
            session_types=list(data.get('sessionTypes') or ['normal']),
        )


@dataclass(frozen=True)
class BehaviorSummary:
    """Aggregated behavioral profile for one user over one timeframe."""

    total_events: int = 0
    top_tags: List[str] = field(default_factory=list)
    top_creators: List[str] = field(default_factory=list)
    preferred_content_types: List[str] = field(default_factory=list)
    avg_session_duration_seconds: float = 0.0
    peak_activity_hours: List[int] = field(default_factory=list)
    engagement_patterns: EngagementPatterns = field(default_factory=EngagementPatterns)
    mood_indicators: List[str] = field(default_factory=lambda: ['neutral'])
    scroll_behavior: ScrollBehavior = field(default_factory=ScrollBehavior)

    @classmethod
    def default(cls) -> 'BehaviorSummary':
        """Summary used for users without events or when summarization fails."""
        return cls()

    def to_dict(self) -> Dict[str, Any]:
        return {
            'totalEvents': self.total_events,
            'topTags': list(self.top_tags),
            'topCreators': list(self.top_creators),
            'preferredContentTypes': list(self.preferred_content_types),
            'avgSessionDurationSeconds': self.avg_session_duration_seconds,
            'peakActivityHours': list(self.peak_activity_hours),
            'engagementPatterns': self.engagement_patterns.to_dict(),
            'moodIndicators': list(self.mood_indicators),
            'scrollBehavior': self.scroll_behavior.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BehaviorSummary':
        return cls(
            total_events=_non_negative_int(data.get('totalEvents')),
            top_tags=list(data.get('topTags') or []),
            top_creators=list(data.get('topCreators') or []),
            preferred_content_types=list(data.get('preferredContentTypes') or []),
            avg_session_duration_seconds=float(data.get('avgSessionDurationSeconds', 0) or 0),
            peak_activity_hours=[int(hour) for hour in data.get('peakActivityHours') or []],
            engagement_patterns=EngagementPatterns.from_dict(data.get('engagementPatterns') or {}),
            mood_indicators=list(data.get('moodIndicators') or ['neutral']),
            scroll_behavior=ScrollBehavior.from_dict(data.get('scrollBehavior') or {}),
        )


@dataclass(frozen=True)
class Creator:
    handle: str = '@unknown'
    id: str = 'unknown'
    display_name: str = 'Unknown User'
    profile_picture: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        data = {'handle': self.handle, 'id': self.id, 'displayName': self.display_name}
        if self.profile_picture:
            data['profilePicture'] = self.profile_picture
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Creator':
        return cls(
            handle=data.get('handle') or '@unknown',
            id=data.get('id') or 'unknown',
            display_name=data.get('displayName') or 'Unknown User',
            profile_picture=data.get('profilePicture'),
        )


@dataclass(frozen=True)
class PostStats:
    likes: int = 0
    comments: int = 0
    shares: int = 0
    views: int = 0

    def __post_init__(self):
        for name in ('likes', 'comments', 'shares', 'views'):
            object.__setattr__(self, name, _non_negative_int(getattr(self, name)))

    @property
    def total_engagement(self) -> int:
        return self.likes + self.comments + self.shares

    def to_dict(self) -> Dict[str, int]:
        return {'likes': self.likes, 'comments': self.comments, 'shares': self.shares, 'views': self.views}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PostStats':
        return cls(
            likes=data.get('likes', 0),
            comments=data.get('comments', 0),
            shares=data.get('shares', 0),
            views=data.get('views', 0),
        )


@dataclass(frozen=True)
class NormalizedPost:
    """Platform-agnostic representation of one piece of content."""

    id: str
    platform: str
    url: str
    type: str
    creator: Creator
    text: str
    tags: List[str] = field(default_factory=list)
    stats: PostStats = field(default_factory=PostStats)
    time_published: str = field(default_factory=utc_now_iso)
    duration_seconds: Optional[int] = None
    thumbnail: Optional[str] = None
    media_url: Optional[str] = None

    def __post_init__(self):
        if self.type not in POST_TYPES:
            raise ValueError(f"Unknown post type: {self.type!r}")

    @property
    def published_at(self) -> datetime:
        try:
            return parse_timestamp(self.time_published)
        except (ValueError, OverflowError):
            logger.debug(f"Unparseable timePublished on post {self.id}: {self.time_published!r}")
            return datetime.fromtimestamp(0, tz=timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'id': self.id,
            'platform': self.platform,
            'url': self.url,
            'type': self.type,
            'creator': self.creator.to_dict(),
            'text': self.text,
            'tags': list(self.tags),
            'stats': self.stats.to_dict(),
            'timePublished': self.time_published,
        }
        if self.duration_seconds is not None:
            data['durationSeconds'] = self.duration_seconds
        if self.thumbnail:
            data['thumbnail'] = self.thumbnail
        if self.media_url:
            data['mediaUrl'] = self.media_url
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'NormalizedPost':
        return cls(
            id=str(data.get('id', '')),
            platform=data.get('platform', ''),
            url=data.get('url', '#'),
            type=data.get('type', 'longform'),
            creator=Creator.from_dict(data.get('creator') or {}),
            text=data.get('text', ''),
            tags=list(data.get('tags') or []),
            stats=PostStats.from_dict(data.get('stats') or {}),
            time_published=data.get('timePublished') or utc_now_iso(),
            duration_seconds=data.get('durationSeconds'),
            thumbnail=data.get('thumbnail'),
            media_url=data.get('mediaUrl'),
        )


@dataclass(frozen=True)
class FeedRules:
    """Blocklist and boost tags supplied by the feed-rules collaborator."""

    blocklist: List[str] = field(default_factory=list)
    boost_tags: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class RankingContext:
    """Request-scoped inputs of one ranking run."""

    user_id: str
    summary: BehaviorSummary
    candidates: List[NormalizedPost]
    intent: str
    session_mode: str


@dataclass
class RankedResult:
    """Ordered window of ranked posts plus ranking metadata."""

    posts: List[NormalizedPost] = field(default_factory=list)
    explanations: Dict[str, str] = field(default_factory=dict)
    diversity_score: float = 0.0
    session_optimization: str = 'balanced'
    confidence_score: float = 0.0
    oracle_used: bool = False
    total_available: int = 0
    session_insights: Dict[str, Any] = field(default_factory=dict)
    message: Optional[str] = None
    cached: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data = {
            'posts': [post.to_dict() for post in self.posts],
            'explanations': dict(self.explanations),
            'diversityScore': self.diversity_score,
            'sessionOptimization': self.session_optimization,
            'confidenceScore': self.confidence_score,
            'oracleUsed': self.oracle_used,
            'totalAvailable': self.total_available,
            'sessionInsights': dict(self.session_insights),
            'cached': self.cached,
        }
        if self.message:
            data['message'] = self.message
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'RankedResult':
        return cls(
            posts=[NormalizedPost.from_dict(post) for post in data.get('posts') or []],
            explanations=dict(data.get('explanations') or {}),
            diversity_score=float(data.get('diversityScore', 0) or 0),
            session_optimization=data.get('sessionOptimization') or 'balanced',
            confidence_score=float(data.get('confidenceScore', 0) or 0),
            oracle_used=bool(data.get('oracleUsed', False)),
            total_available=_non_negative_int(data.get('totalAvailable')),
            session_insights=dict(data.get('sessionInsights') or {}),
            message=data.get('message'),
            cached=bool(data.get('cached', False)),
        )


@dataclass(frozen=True)
class PlatformConnection:
    """A user's connection to one external platform."""

    platform: str
    access_token: str = ''
    is_active: bool = True
    credentials: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'PlatformConnection':
        return cls(
            platform=data.get('platform', ''),
            access_token=data.get('accessToken') or data.get('access_token', ''),
            is_active=bool(data.get('isActive', data.get('is_active', True))),
            credentials=dict(data.get('credentials') or {}),
        )


class OracleResponse(BaseModel):
    """Validated reply of the ranking oracle."""
    order: List[str]
    notes: Optional[str] = None

    @field_validator('order')
    @classmethod
    def order_not_empty(cls, value: List[str]) -> List[str]:
        if not value:
            raise ValueError('order must contain at least one post id')
        return value


def validate_oracle_response(response) -> OracleResponse:
    """
    Validate an untrusted oracle reply

    Args:
        response: OracleResponse or a decoded JSON object

    Returns:
        OracleResponse

    Raises:
        OracleError: if the reply does not match the schema
    """
    if isinstance(response, OracleResponse):
        return response
    if not isinstance(response, dict):
        raise OracleError(f"Oracle reply is not an object: {type(response).__name__}")
    try:
        return OracleResponse.model_validate(response)
    except ValidationError as e:
        raise OracleError(f"Oracle reply failed validation: {e.error_count()} errors") from e
