import logging
import os
from typing import Dict, List, Optional

from atproto import Client as AtprotoClient


class Client:
    def __init__(self, service_url: str = "https://bsky.social"):
        self.client = AtprotoClient(service_url)
        self.authenticated = False
        self.logger = logging.getLogger(self.__class__.__name__)

    def login(self, identifier: str = None, password: str = None):
        """Login to Bluesky using provided credentials or environment variables"""
        if not identifier:
            identifier = os.getenv('BLUESKY_IDENTIFIER')
        if not password:
            password = os.getenv('BLUESKY_PASSWORD')

        if not identifier or not password:
            raise ValueError("Credentials required. Provide them as parameters or set BLUESKY_IDENTIFIER and BLUESKY_PASSWORD")

        try:
            self.client.login(identifier, password)
            self.authenticated = True
            self.logger.info(f"Logged in to Bluesky as {identifier}")
        except Exception as e:
            self.logger.error(f"Bluesky login failed: {e}")
            raise

    def get_timeline(self, limit: int = 50, cursor: str = None) -> List[Dict]:
        """
        Get the authenticated user's home timeline

        Args:
            limit: Number of posts to fetch (max 100 per request)
            cursor: Pagination cursor

        Returns:
            List of post dictionaries
        """
        if not self.authenticated:
            raise RuntimeError("Must login first. Call client.login(identifier, password)")

        params = {'limit': min(max(1, limit), 100)}
        if cursor:
            params['cursor'] = cursor

        response = self.client.app.bsky.feed.get_timeline(params)

        posts = []
        for feed_item in response.feed:
            post = feed_item.post
            record = post.record
            posts.append({
                'uri': post.uri,
                'cid': post.cid,
                'author': {
                    'did': post.author.did,
                    'handle': post.author.handle,
                    'display_name': getattr(post.author, 'display_name', '') or '',
                    'avatar': getattr(post.author, 'avatar', None),
                },
                'text': getattr(record, 'text', '') or '',
                'tags': list(getattr(record, 'tags', None) or []),
                'created_at': getattr(record, 'created_at', None),
                'indexed_at': post.indexed_at,
                'like_count': getattr(post, 'like_count', 0) or 0,
                'repost_count': getattr(post, 'repost_count', 0) or 0,
                'reply_count': getattr(post, 'reply_count', 0) or 0,
                'images': self._image_urls(post),
            })

        self.logger.info(f"Fetched {len(posts)} timeline posts")
        return posts

    @staticmethod
    def _image_urls(post) -> List[str]:
        embed = getattr(post, 'embed', None)
        images = getattr(embed, 'images', None) or []
        return [image.thumb for image in images if getattr(image, 'thumb', None)]


def fetch_feed(credentials: Dict, limit: int, client: Optional[Client] = None) -> List[Dict]:
    """Platform fetcher: log in with the stored app password and read the home timeline"""
    client = client or Client(credentials.get('service_url') or "https://bsky.social")
    client.login(credentials.get('identifier'), credentials.get('access_token') or credentials.get('password'))
    return client.get_timeline(limit=limit)
