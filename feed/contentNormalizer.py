"""
Content normalization - maps raw platform payloads onto NormalizedPost
"""
import logging
import time
from typing import Dict, List, Optional

from feed.models import Creator, NormalizedPost, PostStats, utc_now_iso
from feed.platformAdapters import PlatformAdapter, default_adapters, truncate_text

logger = logging.getLogger(__name__)

DEFAULT_LIMITS = {'maxLength': 1000, 'maxHashtags': 10, 'supportsMedia': False}
REQUIRED_FIELDS = ('id', 'platform', 'type', 'creator', 'time_published', 'stats')


class ContentNormalizer:
    """Dispatches raw posts to the registered platform adapter."""

    def __init__(self, adapters: Optional[Dict[str, PlatformAdapter]] = None):
        self.adapters = adapters if adapters is not None else default_adapters()

    def register(self, adapter: PlatformAdapter):
        self.adapters[adapter.name] = adapter

    def normalize(self, raw_post: Dict, platform: str) -> NormalizedPost:
        """
        Normalize one raw platform post

        Never raises: unknown platforms and mapping errors produce the
        minimal fallback record.

        Args:
            raw_post: Raw payload as returned by the platform API
            platform: Platform name

        Returns:
            NormalizedPost
        """
        raw_post = raw_post if isinstance(raw_post, dict) else {}
        adapter = self.adapters.get((platform or '').lower())

        if adapter is None:
            logger.warning(f"Unsupported platform: {platform}")
            return self._fallback(raw_post, platform)

        try:
            return adapter.normalize(raw_post)
        except Exception as e:
            logger.error(f"Error normalizing {platform} content: {e}")
            return self._fallback(raw_post, platform)

    def normalize_many(self, raw_posts: List[Dict], platform: str) -> List[NormalizedPost]:
        return [self.normalize(raw_post, platform) for raw_post in raw_posts or []]

    def format_for_platform(self, content: str, hashtags: List[str], platform: str,
                            max_length: Optional[int] = None) -> str:
        """
        Shape outgoing text for a platform; the result never exceeds the platform maximum

        Args:
            content: Body text
            hashtags: Tags to append where the platform allows them
            platform: Target platform name
            max_length: Optional tighter limit

        Returns:
            Formatted text
        """
        content = content or ''
        hashtags = hashtags or []
        adapter = self.adapters.get((platform or '').lower())

        if adapter is None:
            limit = max_length or DEFAULT_LIMITS['maxLength']
            return truncate_text(content, limit)

        limit = min(max_length, adapter.max_length) if max_length else adapter.max_length
        try:
            return adapter.format(content, hashtags, limit)
        except Exception as e:
            logger.error(f"Error formatting content for {platform}: {e}")
            return truncate_text(content, limit)

    def get_platform_limits(self, platform: str) -> Dict:
        adapter = self.adapters.get((platform or '').lower())
        if adapter is None:
            return dict(DEFAULT_LIMITS)
        return adapter.limits()

    def _fallback(self, raw_post: Dict, platform: str) -> NormalizedPost:
        """Minimal valid record for payloads no adapter could map."""
        platform = platform or 'unknown'
        try:
            return NormalizedPost(
                id=str(raw_post.get('id') or f"{platform}_{int(time.time() * 1000)}"),
                platform=platform,
                url=raw_post.get('url') or raw_post.get('permalink') or '#',
                type='longform',
                creator=Creator(),
                text=str(raw_post.get('text') or raw_post.get('caption') or raw_post.get('message')
                         or 'Content not available'),
                tags=[],
                stats=PostStats(),
                time_published=str(raw_post.get('timestamp') or raw_post.get('created_time') or utc_now_iso()),
                thumbnail=raw_post.get('thumbnail_url') or raw_post.get('media_url'),
            )
        except Exception as e:
            logger.error(f"Error building fallback record for {platform}: {e}")
            return NormalizedPost(
                id=f"{platform}_{int(time.time() * 1000)}",
                platform=platform,
                url='#',
                type='longform',
                creator=Creator(),
                text='Content not available',
            )


def validate_normalized_post(post) -> bool:
    """Check that every required field of a normalized post is present."""
    if not isinstance(post, NormalizedPost):
        return False
    # empty text is allowed (image-only posts), a missing one is not
    if not isinstance(post.text, str):
        return False
    return all(getattr(post, name, None) for name in REQUIRED_FIELDS)
