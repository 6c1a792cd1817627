import logging
from typing import Callable, Dict, List

import requests

from client.bluesky import timeline

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT_SECONDS = 10
UA = {"User-Agent": "unified-feed/1.0"}

INSTAGRAM_FIELDS = 'id,caption,media_type,media_url,permalink,thumbnail_url,timestamp,like_count,comments_count,username'
FACEBOOK_FIELDS = (
    'id,message,created_time,full_picture,permalink_url,status_type,from,shares,'
    'likes.summary(true),comments.summary(true)'
)

PlatformFetcher = Callable[[Dict, int], List[Dict]]


def _get_json(url: str, params: Dict = None, headers: Dict = None) -> Dict:
    """GET a JSON document; HTTP errors raise so the caller can isolate the platform"""
    response = requests.get(
        url,
        params=params,
        headers={**UA, **(headers or {})},
        timeout=REQUEST_TIMEOUT_SECONDS,
    )
    response.raise_for_status()
    return response.json()


def fetch_instagram_feed(credentials: Dict, limit: int) -> List[Dict]:
    data = _get_json(
        'https://graph.instagram.com/me/media',
        params={'fields': INSTAGRAM_FIELDS, 'limit': limit, 'access_token': credentials['access_token']},
    )
    return data.get('data', [])


def fetch_youtube_feed(credentials: Dict, limit: int) -> List[Dict]:
    """Search the user's videos, then load snippet, statistics and duration for them"""
    token = credentials['access_token']
    search = _get_json(
        'https://www.googleapis.com/youtube/v3/search',
        params={'part': 'snippet', 'forMine': 'true', 'type': 'video',
                'maxResults': min(limit, 50), 'access_token': token},
    )
    video_ids = [item['id']['videoId'] for item in search.get('items', []) if item.get('id', {}).get('videoId')]
    if not video_ids:
        return []

    videos = _get_json(
        'https://www.googleapis.com/youtube/v3/videos',
        params={'part': 'snippet,statistics,contentDetails', 'id': ','.join(video_ids), 'access_token': token},
    )
    return videos.get('items', [])


def fetch_twitter_feed(credentials: Dict, limit: int) -> List[Dict]:
    """Reverse-chronological home timeline with authors attached to each tweet"""
    headers = {'Authorization': f"Bearer {credentials['access_token']}"}
    user_id = credentials.get('user_id')
    if not user_id:
        user_id = _get_json('https://api.twitter.com/2/users/me', headers=headers)['data']['id']

    data = _get_json(
        f'https://api.twitter.com/2/users/{user_id}/timelines/reverse_chronological',
        params={
            'max_results': min(max(limit, 5), 100),
            'expansions': 'author_id,attachments.media_keys',
            'tweet.fields': 'public_metrics,created_at,entities',
            'user.fields': 'username,name,profile_image_url',
            'media.fields': 'preview_image_url,url',
        },
        headers=headers,
    )

    includes = data.get('includes', {})
    users = {user['id']: user for user in includes.get('users', [])}
    media = {item['media_key']: item for item in includes.get('media', [])}

    tweets = []
    for tweet in data.get('data', []):
        tweet = dict(tweet)
        tweet['author'] = users.get(tweet.get('author_id'), {})
        media_keys = (tweet.get('attachments') or {}).get('media_keys', [])
        if media_keys:
            tweet['attachments'] = {'media': [media[key] for key in media_keys if key in media]}
        tweets.append(tweet)
    return tweets


def fetch_facebook_feed(credentials: Dict, limit: int) -> List[Dict]:
    data = _get_json(
        'https://graph.facebook.com/me/posts',
        params={'fields': FACEBOOK_FIELDS, 'limit': limit, 'access_token': credentials['access_token']},
    )
    return data.get('data', [])


def default_fetchers() -> Dict[str, PlatformFetcher]:
    """Registry of feed fetchers keyed by platform name"""
    return {
        'instagram': fetch_instagram_feed,
        'youtube': fetch_youtube_feed,
        'twitter': fetch_twitter_feed,
        'facebook': fetch_facebook_feed,
        'bluesky': timeline.fetch_feed,
    }
