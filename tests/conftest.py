"""Test configuration and shared fixtures."""

import json
from datetime import datetime, timedelta, timezone

import pytest

from feed.models import BehaviorEvent, Creator, NormalizedPost, PostStats


class FakeCache:
    """In-memory stand-in for the Redis client (values go through JSON like the real one)."""

    def __init__(self):
        self.store = {}
        self.ttls = {}
        self.deleted = []

    def get(self, key):
        data = self.store.get(key)
        return json.loads(data) if data else None

    def set_with_ttl(self, key, value, ttl):
        self.store[key] = json.dumps(value, default=str)
        self.ttls[key] = ttl
        return True

    def delete(self, *keys):
        self.deleted.extend(keys)
        removed = 0
        for key in keys:
            if self.store.pop(key, None) is not None:
                removed += 1
        return removed

    def get_stats(self):
        return {'used_memory_human': '1M'}


class BrokenCache:
    def get(self, key):
        raise ConnectionError("redis down")

    def set_with_ttl(self, key, value, ttl):
        raise ConnectionError("redis down")

    def delete(self, *keys):
        raise ConnectionError("redis down")


class FakeEventStore:
    def __init__(self, events=None):
        self.events = list(events or [])
        self.find_calls = []

    def insert_events(self, events):
        self.events.extend(events)
        return len(events)

    def find_events(self, user_id, since):
        self.find_calls.append((user_id, since))
        return [event for event in self.events if event.user_id == user_id and event.timestamp >= since]


class FakeProfileStore:
    def __init__(self):
        self.summaries = {}
        self.connections = {}

    def update_behavior_summary(self, user_id, summary):
        self.summaries[user_id] = summary

    def get_connected_platforms(self, user_id):
        return self.connections.get(user_id, [])


class FakePostStore:
    def __init__(self):
        self.upserts = []

    def upsert_posts(self, posts, user_id):
        self.upserts.append((user_id, [post.id for post in posts]))
        return len(posts)


class FakeOracle:
    def __init__(self, response=None, error=None):
        self.response = response
        self.error = error
        self.payloads = []

    def rerank(self, payload):
        self.payloads.append(payload)
        if self.error:
            raise self.error
        return self.response


@pytest.fixture
def now():
    return datetime.now(timezone.utc)


@pytest.fixture
def fake_cache():
    return FakeCache()


@pytest.fixture
def make_event(now):
    def _make(event_type='view', minutes_ago=0, user_id='user_1', post_id='post_1', dwell=None, **metadata):
        return BehaviorEvent(
            user_id=user_id,
            post_id=post_id,
            event_type=event_type,
            timestamp=now - timedelta(minutes=minutes_ago),
            dwell_time_ms=dwell,
            metadata=metadata,
        )
    return _make


@pytest.fixture
def make_post():
    def _make(post_id, likes=0, comments=0, shares=0, tags=None, text=None, post_type='short',
              handle='@creator', published='2024-05-01T12:00:00+00:00', platform='twitter'):
        return NormalizedPost(
            id=post_id,
            platform=platform,
            url=f"https://example.com/{post_id}",
            type=post_type,
            creator=Creator(handle=handle, id=handle.strip('@'), display_name=handle),
            text=text if text is not None else f"Post {post_id}",
            tags=list(tags or []),
            stats=PostStats(likes=likes, comments=comments, shares=shares, views=0),
            time_published=published,
        )
    return _make
