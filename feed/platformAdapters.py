"""
Per-platform field mapping and output formatting.

Each platform is one ``PlatformAdapter`` subclass; the normalizer looks the
adapter up in a registry keyed by platform name. Adapters hold no mutable
state, so one instance serves every request.
"""
import logging
import math
import re
import time
from typing import Dict, List, Optional

from featureEngineering.textPreprocessing import (
    clean_text, extract_hashtags, extract_keywords, extract_mentions
)
from feed.config import (
    KEYWORD_STOPWORDS, MAX_KEYWORD_TAGS, MIN_KEYWORD_LENGTH,
    SHORT_VIDEO_MAX_SECONDS, THREAD_MIN_CHARS, TRUNCATE_WORD_BOUNDARY_RATIO
)
from feed.models import Creator, NormalizedPost, PostStats, utc_now_iso

logger = logging.getLogger(__name__)

DURATION_PATTERN = re.compile(r'^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$')
SENTENCE_BREAK_PATTERN = re.compile(r'([.!?]) ')
TITLE_WORD_PATTERN = re.compile(r'\w\S*')


def parse_duration(duration) -> Optional[int]:
    """
    Parse an ISO-8601 duration token (``PT#H#M#S``) into seconds

    Args:
        duration: Duration string such as ``PT1H2M3S``

    Returns:
        Total seconds, or None for absent/unparseable input
    """
    if not duration or not isinstance(duration, str):
        return None

    match = DURATION_PATTERN.match(duration.strip().upper())
    if not match or not any(match.groups()):
        return None

    days, hours, minutes, seconds = (int(part) if part else 0 for part in match.groups())
    return days * 86400 + hours * 3600 + minutes * 60 + seconds


def coerce_duration(value) -> Optional[int]:
    """Seconds from a numeric value, a numeric string or an ISO-8601 duration; None otherwise"""
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return int(value) if math.isfinite(value) and value >= 0 else None
    if isinstance(value, str):
        try:
            return coerce_duration(float(value))
        except ValueError:
            return parse_duration(value)
    return None


def classify_video(
duration_seconds: Optional[int]) -> str:
    """Videos under a minute are short-form, everything else (including unknown length) is longform."""
    if duration_seconds is not None and duration_seconds < SHORT_VIDEO_MAX_SECONDS:
        return 'short'
    return 'longform'


def truncate_text(text: str, max_length: int, suffix: str = '') -> str:
    """
    Truncate text so the result never exceeds ``max_length``

    Breaks at the last space when that space lies beyond 80% of the limit,
    otherwise cuts mid-word.
    """
    if max_length <= 0:
        return ''
    if len(text) <= max_length:
        return text
    if len(suffix) >= max_length:
        return text[:max_length]

    truncated = text[:max_length - len(suffix)]
    last_space = truncated.rfind(' ')
    if last_space > max_length * TRUNCATE_WORD_BOUNDARY_RATIO:
        return truncated[:last_space] + suffix
    return truncated + suffix


def add_line_breaks(text: str) -> str:
    return SENTENCE_BREAK_PATTERN.sub(r'\1\n\n', text)


def to_title_case(text: str) -> str:
    return TITLE_WORD_PATTERN.sub(lambda m: m.group(0)[0].upper() + m.group(0)[1:].lower(), text)


def hashtag_string(hashtags: List[str], limit: int) -> str:
    tags = [tag.replace('#', '').strip() for tag in hashtags]
    return ' '.join(f"#{tag}" for tag in tags[:limit] if tag)


def _placeholder_id(prefix: str) -> str:
    return f"{prefix}_{int(time.time() * 1000)}"


def _int(value) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


class PlatformAdapter:
    """Maps one platform's raw payloads onto ``NormalizedPost`` and shapes outgoing text."""

    name = 'generic'
    max_length = 1000
    max_hashtags = 10
    supports_media = False

    def normalize(self, raw: Dict) -> NormalizedPost:
        raise NotImplementedError

    def format(self, content: str, hashtags: List[str], max_length: Optional[int] = None) -> str:
        return truncate_text(content, max_length or self.max_length)

    def limits(self) -> Dict:
        return {
            'maxLength': self.max_length,
            'maxHashtags': self.max_hashtags,
            'supportsMedia': self.supports_media,
        }


class InstagramAdapter(PlatformAdapter):
    name = 'instagram'
    max_length = 2200
    max_hashtags = 30
    supports_media = True

    def normalize(self, raw: Dict) -> NormalizedPost:
        post_id = str(raw.get('id') or _placeholder_id('ig'))
        text = raw.get('caption') or ''
        media_type = (raw.get('media_type') or '').lower()
        duration = coerce_duration(raw.get('duration'))

        if media_type == 'video':
            post_type = classify_video(duration)
        elif media_type == 'live':
            post_type = 'live'
        else:
            post_type = 'image'

        username = raw.get('username')
        return NormalizedPost(
            id=post_id,
            platform=self.name,
            url=raw.get('permalink') or f"https://instagram.com/p/{post_id}",
            type=post_type,
            creator=Creator(
                handle=f"@{username}" if username else '@unknown',
                id=str((raw.get('owner') or {}).get('id') or 'unknown'),
                display_name=username or 'Instagram User',
            ),
            text=clean_text(text),
            tags=extract_hashtags(text),
            duration_seconds=duration,
            stats=PostStats(
                likes=raw.get('like_count'),
                comments=raw.get('comments_count'),
                shares=0,  # not exposed by the Graph API
                views=raw.get('video_views') or raw.get('plays'),
            ),
            time_published=raw.get('timestamp') or utc_now_iso(),
            thumbnail=raw.get('thumbnail_url') or raw.get('media_url'),
            media_url=raw.get('media_url'),
        )

    def format(self, content: str, hashtags: List[str], max_length: Optional[int] = None) -> str:
        formatted = content
        if '\n' not in formatted and len(formatted) > 100:
            formatted = add_line_breaks(formatted)

        tags = hashtag_string(hashtags, self.max_hashtags)
        if tags:
            formatted += '\n\n' + tags

        return truncate_text(formatted, max_length or self.max_length)


class YouTubeAdapter(PlatformAdapter):
    name = 'youtube'
    max_length = 5000
    max_hashtags = 15
    supports_media = True

    def normalize(self, raw: Dict) -> NormalizedPost:
        raw_id = raw.get('id')
        if isinstance(raw_id, dict):
            raw_id = raw_id.get('videoId')
        post_id = str(raw_id or _placeholder_id('yt'))

        snippet = raw.get('snippet') or {}
        statistics = raw.get('statistics') or {}
        details = raw.get('contentDetails') or {}
        title = snippet.get('title') or ''
        description = snippet.get('description') or ''

        duration = parse_duration(details.get('duration') or snippet.get('duration'))
        if snippet.get('liveBroadcastContent') == 'live':
            post_type = 'live'
        else:
            post_type = classify_video(duration)

        thumbnails = snippet.get('thumbnails') or {}
        thumbnail = (thumbnails.get('high') or {}).get('url') or (thumbnails.get('default') or {}).get('url')

        return NormalizedPost(
            id=post_id,
            platform=self.name,
            url=f"https://youtu.be/{post_id}",
            type=post_type,
            creator=Creator(
                handle=snippet.get('channelTitle') or '@unknown',
                id=snippet.get('channelId') or 'unknown',
                display_name=snippet.get('channelTitle') or 'YouTube Creator',
            ),
            text=clean_text(f"{title}\n\n{description}"),
            tags=[tag.lower() for tag in snippet.get('tags') or []] or extract_keywords(
                f"{title} {description}", KEYWORD_STOPWORDS, MIN_KEYWORD_LENGTH, MAX_KEYWORD_TAGS
            ),
            duration_seconds=duration,
            stats=PostStats(
                likes=_int(statistics.get('likeCount')),
                comments=_int(statistics.get('commentCount')),
                shares=0,
                views=_int(statistics.get('viewCount')),
            ),
            time_published=snippet.get('publishedAt') or utc_now_iso(),
            thumbnail=thumbnail,
        )

    def format(self, content: str, hashtags: List[str], max_length: Optional[int] = None) -> str:
        lines = content.split('\n')
        lines[0] = to_title_case(lines[0])
        formatted = '\n'.join(lines)

        tags = hashtag_string(hashtags, self.max_hashtags)
        if tags:
            formatted += '\n\nTags: ' + tags

        return truncate_text(formatted, max_length or self.max_length)


class ShortTextAdapter(PlatformAdapter):
    """Shared shaping for short-form text platforms."""

    suffix_hashtags = 3

    def classify_text(self, text: str) -> str:
        return 'thread' if len(text) > THREAD_MIN_CHARS else 'short'

    def format(self, content: str, hashtags: List[str], max_length: Optional[int] = None) -> str:
        limit = max_length or self.max_length
        formatted = content

        tags = hashtag_string(hashtags, self.suffix_hashtags)
        if tags and len(formatted) + 1 + len(tags) <= limit:
            formatted += ' ' + tags

        return truncate_text(formatted, limit, '...')


class TwitterAdapter(ShortTextAdapter):
    name = 'twitter'
    max_length = 280
    max_hashtags = 10
    supports_media = True

    def normalize(self, raw: Dict) -> NormalizedPost:
        post_id = str(raw.get('id') or _placeholder_id('tw'))
        text = raw.get('text') or ''
        metrics = raw.get('public_metrics') or {}
        author = raw.get('author') or {}
        media = (raw.get('attachments') or {}).get('media') or []

        return NormalizedPost(
            id=post_id,
            platform=self.name,
            url=f"https://twitter.com/user/status/{post_id}",
            type=self.classify_text(text),
            creator=Creator(
                handle=f"@{author['username']}" if author.get('username') else '@unknown',
                id=str(author.get('id') or raw.get('author_id') or 'unknown'),
                display_name=author.get('name') or 'Twitter User',
                profile_picture=author.get('profile_image_url'),
            ),
            text=clean_text(text),
            tags=extract_hashtags(text) + extract_mentions(text),
            stats=PostStats(
                likes=metrics.get('like_count'),
                comments=metrics.get('reply_count'),
                shares=metrics.get('retweet_count'),
                views=metrics.get('impression_count'),
            ),
            time_published=raw.get('created_at') or utc_now_iso(),
            thumbnail=media[0].get('preview_image_url') if media else None,
        )


class BlueskyAdapter(ShortTextAdapter):
    name = 'bluesky'
    max_length = 300
    max_hashtags = 10
    supports_media = True

    def normalize(self, raw: Dict) -> NormalizedPost:
        uri = raw.get('uri') or _placeholder_id('bsky')
        text = raw.get('text') or ''
        author = raw.get('author') or {}
        images = raw.get('images') or []
        handle = author.get('handle')

        if images and not text.strip():
            post_type = 'image'
        else:
            post_type = self.classify_text(text)

        rkey = uri.rsplit('/', 1)[-1]
        url = f"https://bsky.app/profile/{handle}/post/{rkey}" if handle else uri

        return NormalizedPost(
            id=uri,
            platform=self.name,
            url=url,
            type=post_type,
            creator=Creator(
                handle=f"@{handle}" if handle else '@unknown',
                id=author.get('did') or 'unknown',
                display_name=author.get('display_name') or handle or 'Bluesky User',
                profile_picture=author.get('avatar'),
            ),
            text=clean_text(text),
            tags=[tag.lower() for tag in raw.get('tags') or []] or extract_hashtags(text),
            stats=PostStats(
                likes=raw.get('like_count'),
                comments=raw.get('reply_count'),
                shares=raw.get('repost_count'),
                views=0,
            ),
            time_published=raw.get('created_at') or raw.get('indexed_at') or utc_now_iso(),
            thumbnail=images[0] if images else None,
            media_url=images[0] if images else None,
        )


class FacebookAdapter(PlatformAdapter):
    name = 'facebook'
    max_length = 8000
    max_hashtags = 20
    supports_media = True
    suffix_hashtags = 5

    def normalize(self, raw: Dict) -> NormalizedPost:
        post_id = str(raw.get('id') or _placeholder_id('fb'))
        text = raw.get('message') or ''
        likes = ((raw.get('likes') or {}).get('summary') or {}).get('total_count')
        comments = ((raw.get('comments') or {}).get('summary') or {}).get('total_count')
        shares = raw.get('shares')
        if isinstance(shares, dict):
            shares = shares.get('count')

        picture = raw.get('full_picture') or raw.get('thumbnail_url')
        if raw.get('status_type') == 'added_video':
            post_type = classify_video(raw.get('duration'))
        elif picture and not text.strip():
            post_type = 'image'
        else:
            post_type = 'longform'

        author = raw.get('from') or {}
        return NormalizedPost(
            id=post_id,
            platform=self.name,
            url=raw.get('permalink_url') or f"https://facebook.com/posts/{post_id}",
            type=post_type,
            creator=Creator(
                handle=f"@{author['name'].replace(' ', '').lower()}" if author.get('name') else '@facebook_user',
                id=str(author.get('id') or 'unknown'),
                display_name=author.get('name') or 'Facebook User',
            ),
            text=clean_text(text),
            tags=extract_hashtags(text),
            stats=PostStats(likes=likes, comments=comments, shares=shares, views=0),
            time_published=raw.get('created_time') or utc_now_iso(),
            thumbnail=picture,
        )

    def format(self, content: str, hashtags: List[str], max_length: Optional[int] = None) -> str:
        formatted = content
        if '?' not in formatted and 'What do you think' not in formatted:
            formatted += '\n\nWhat do you think?'

        tags = hashtag_string(hashtags, self.suffix_hashtags)
        if tags:
            formatted += '\n\n' + tags

        return truncate_text(formatted, max_length or self.max_length)


def default_adapters() -> Dict[str, PlatformAdapter]:
    """Registry of every supported platform adapter keyed by platform name."""
    adapters = [InstagramAdapter(), YouTubeAdapter(), TwitterAdapter(), FacebookAdapter(), BlueskyAdapter()]
    return {adapter.name: adapter for adapter in adapters}
