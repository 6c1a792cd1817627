import pytest

from feed.contentNormalizer import ContentNormalizer, validate_normalized_post
from feed.platformAdapters import (
    PlatformAdapter, classify_video, hashtag_string, parse_duration, truncate_text
)


@pytest.fixture
def normalizer():
    return ContentNormalizer()


@pytest.mark.parametrize("platform", ['instagram', 'youtube', 'twitter', 'facebook', 'bluesky', 'myspace'])
def test_empty_payload_still_normalizes(normalizer, platform):
    post = normalizer.normalize({}, platform)
    assert validate_normalized_post(post)
    assert post.platform == platform


def test_non_dict_payload_falls_back(normalizer):
    post = normalizer.normalize(None, 'twitter')
    assert validate_normalized_post(post)


def test_unknown_platform_fallback_record(normalizer):
    post = normalizer.normalize({'id': 42, 'caption': 'hello', 'permalink': 'https://x.test/42'}, 'myspace')

    assert post.id == '42'
    assert post.type == 'longform'
    assert post.url == 'https://x.test/42'
    assert post.text == 'hello'
    assert post.creator.handle == '@unknown'
    assert post.tags == []


def test_fallback_without_text(normalizer):
    post = normalizer.normalize({}, 'myspace')
    assert post.text == 'Content not available'
    assert post.url == '#'


def test_broken_adapter_falls_back():
    class ExplodingAdapter(PlatformAdapter):
        name = 'exploding'

        def normalize(self, raw):
            raise KeyError('missing field')

    normalizer = ContentNormalizer({})
    normalizer.register(ExplodingAdapter())

    post = normalizer.normalize({'id': 'x1', 'text': 'still here'}, 'exploding')
    assert post.id == 'x1'
    assert post.text == 'still here'
    assert post.type == 'longform'


def test_instagram_mapping(normalizer):
    raw = {
        'id': '1789',
        'caption': 'Sunset run #Running #sunset\r\n\r\n\r\n\r\nsee you',
        'media_type': 'VIDEO',
        'duration': 30,
        'username': 'runner',
        'like_count': 120,
        'comments_count': 8,
        'timestamp': '2024-05-01T10:00:00+0000',
        'media_url': 'https://cdn.test/v.mp4',
    }
    post = normalizer.normalize(raw, 'instagram')

    assert post.type == 'short'
    assert post.url == 'https://instagram.com/p/1789'
    assert post.creator.handle == '@runner'
    assert post.tags == ['running', 'sunset']
    assert '\n\n\n' not in post.text
    assert post.stats.likes == 120
    assert post.stats.comments == 8
    assert post.stats.shares == 0


@pytest.mark.parametrize("media_type, duration, expected", [
    ('IMAGE', None, 'image'),
    ('CAROUSEL_ALBUM', None, 'image'),
    ('VIDEO', 120, 'longform'),
    ('VIDEO', None, 'longform'),
    ('LIVE', None, 'live'),
    ('VIDEO', '45', 'short'),
    ('VIDEO', 'PT2M', 'longform'),
    ('VIDEO', 'unknown', 'longform'),
])
def test_instagram_types(normalizer, media_type, duration, expected):
    post = normalizer.normalize({'id': '1', 'media_type': media_type, 'duration': duration}, 'instagram')
    assert post.type == expected


def test_youtube_mapping(normalizer):
    raw = {
        'id': {'videoId': 'abc123'},
        'snippet': {
            'title': 'Learning Python',
            'description': 'A walkthrough',
            'channelTitle': 'Teach',
            'channelId': 'UC1',
            'publishedAt': '2024-05-01T10:00:00Z',
            'tags': ['Python', 'Tutorial'],
        },
        'statistics': {'viewCount': '1000', 'likeCount': '50', 'commentCount': '7'},
        'contentDetails': {'duration': 'PT12M3S'},
    }
    post = normalizer.normalize(raw, 'youtube')

    assert post.id == 'abc123'
    assert post.url == 'https://youtu.be/abc123'
    assert post.type == 'longform'
    assert post.duration_seconds == 723
    assert post.tags == ['python', 'tutorial']
    assert post.stats.views == 1000
    assert post.stats.likes == 50
    assert post.text == 'Learning Python\n\nA walkthrough'


def test_youtube_keyword_fallback(normalizer):
    raw = {
        'id': 'vid',
        'snippet': {'title': 'Quick pasta recipe', 'description': 'This dinner idea with fresh basil'},
        'contentDetails': {'duration': 'PT45S'},
    }
    post = normalizer.normalize(raw, 'youtube')

    assert post.type == 'short'
    # "this" and "with" are stopwords, "idea" passes the length floor
    assert post.tags == ['quick', 'pasta', 'recipe', 'dinner', 'idea', 'fresh', 'basil']


def test_youtube_live(normalizer):
    post = normalizer.normalize({'id': 'v', 'snippet': {'liveBroadcastContent': 'live'}}, 'youtube')
    assert post.type == 'live'


def test_twitter_mapping(normalizer):
    raw = {
        'id': '99',
        'text': 'Shipping #Python tips with @Guido',
        'author': {'id': '7', 'username': 'dev', 'name': 'Dev'},
        'public_metrics': {'like_count': 5, 'reply_count': 2, 'retweet_count': 1, 'impression_count': 300},
        'created_at': '2024-05-01T10:00:00.000Z',
    }
    post = normalizer.normalize(raw, 'twitter')

    assert post.type == 'short'
    assert post.creator.handle == '@dev'
    assert post.tags == ['python', '@guido']
    assert post.stats.shares == 1
    assert post.url == 'https://twitter.com/user/status/99'


def test_twitter_long_text_is_thread(normalizer):
    post = normalizer.normalize({'id': '1', 'text': 'x' * 241}, 'twitter')
    assert post.type == 'thread'

    post = normalizer.normalize({'id': '2', 'text': 'x' * 240}, 'twitter')
    assert post.type == 'short'


def test_bluesky_mapping(normalizer):
    raw = {
        'uri': 'at://did:plc:abc/app.bsky.feed.post/3kxyz',
        'text': '',
        'author': {'did': 'did:plc:abc', 'handle': 'alice.bsky.social', 'display_name': 'Alice'},
        'images': ['https://cdn.bsky.app/img/1.jpg'],
        'like_count': 3,
        'repost_count': 1,
        'reply_count': 0,
        'created_at': '2024-05-01T10:00:00Z',
    }
    post = normalizer.normalize(raw, 'bluesky')

    assert post.id == raw['uri']
    assert post.type == 'image'
    assert post.url == 'https://bsky.app/profile/alice.bsky.social/post/3kxyz'
    assert post.creator.handle == '@alice.bsky.social'
    assert post.stats.shares == 1
    assert validate_normalized_post(post)


def test_facebook_mapping(normalizer):
    raw = {
        'id': '10_20',
        'message': 'Community garden day #local',
        'from': {'id': '10', 'name': 'Green Street'},
        'likes': {'summary': {'total_count': 40}},
        'comments': {'summary': {'total_count': 4}},
        'shares': {'count': 2},
        'created_time': '2024-05-01T10:00:00+0000',
    }
    post = normalizer.normalize(raw, 'facebook')

    assert post.type == 'longform'
    assert post.creator.handle == '@greenstreet'
    assert post.tags == ['local']
    assert (post.stats.likes, post.stats.comments, post.stats.shares) == (40, 4, 2)


@pytest.mark.parametrize("duration, expected", [
    ('PT1H2M3S', 3723),
    ('PT45S', 45),
    ('PT3M', 180),
    ('P1DT1S', 86401),
    ('garbage', None),
    ('', None),
    (None, None),
])
def test_parse_duration(duration, expected):
    assert parse_duration(duration) == expected


def test_classify_video_boundary():
    assert classify_video(59) == 'short'
    assert classify_video(60) == 'longform'
    assert classify_video(None) == 'longform'


def test_truncate_breaks_on_late_word_boundary():
    text = 'word ' * 30
    result = truncate_text(text, 52, '...')
    assert len(result) <= 52
    assert result.endswith('word...')


def test_truncate_cuts_mid_word_without_late_space():
    text = 'a ' + 'b' * 100
    result = truncate_text(text, 20, '...')
    assert result == 'a ' + 'b' * 15 + '...'


def test_truncate_leaves_short_text():
    assert truncate_text('short', 280) == 'short'


@pytest.mark.parametrize("platform, limit", [
    ('twitter', 280),
    ('bluesky', 300),
    ('instagram', 2200),
    ('youtube', 5000),
    ('facebook', 8000),
    ('myspace', 1000),
])
def test_format_never_exceeds_platform_limit(normalizer, platform, limit):
    content = 'Lorem ipsum dolor sit amet. ' * 400
    hashtags = [f"tag{i}" for i in range(40)]

    formatted = normalizer.format_for_platform(content, hashtags, platform)
    assert len(formatted) <= limit


def test_format_respects_tighter_limit(normalizer):
    formatted = normalizer.format_for_platform('hello world ' * 50, ['a'], 'instagram', max_length=100)
    assert len(formatted) <= 100


def test_twitter_format_appends_tags_that_fit(normalizer):
    formatted = normalizer.format_for_platform('New release', ['python', '#release', 'oss', 'extra'], 'twitter')
    assert formatted == 'New release #python #release #oss'


def test_twitter_format_skips_tags_that_do_not_fit(normalizer):
    content = 'x' * 275
    formatted = normalizer.format_for_platform(content, ['python'], 'twitter')
    assert formatted == content


def test_facebook_format_adds_question(normalizer):
    formatted = normalizer.format_for_platform('Big news today', ['news'], 'facebook')
    assert formatted == 'Big news today\n\nWhat do you think?\n\n#news'

    formatted = normalizer.format_for_platform('Ready?', [], 'facebook')
    assert formatted == 'Ready?'


def test_youtube_format_title_case_and_tags(normalizer):
    formatted = normalizer.format_for_platform('learning python fast\nmore text', ['python'], 'youtube')
    assert formatted == 'Learning Python Fast\nmore text\n\nTags: #python'


def test_hashtag_string_limit():
    assert hashtag_string(['#a', 'b', 'c'], 2) == '#a #b'


def test_platform_limits(normalizer):
    assert normalizer.get_platform_limits('twitter') == {'maxLength': 280, 'maxHashtags': 10, 'supportsMedia': True}
    assert normalizer.get_platform_limits('instagram')['maxHashtags'] == 30
    assert normalizer.get_platform_limits('unknown') == {'maxLength': 1000, 'maxHashtags': 10, 'supportsMedia': False}


def test_validate_rejects_non_posts():
    assert validate_normalized_post({'id': '1'}) is False
    assert validate_normalized_post(None) is False


def test_instagram_string_duration_is_coerced(normalizer):
    post = normalizer.normalize({'id': '1789', 'media_type': 'VIDEO', 'duration': '30.5'}, 'instagram')
    assert post.id == '1789'
    assert post.type == 'short'
    assert post.duration_seconds == 30
