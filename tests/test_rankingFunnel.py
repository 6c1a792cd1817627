import pytest

from conftest import BrokenCache, FakeOracle, FakePostStore
from feed.config import RankingSettings
from feed.exceptions import OracleError
from feed.models import BehaviorSummary, FeedRules, OracleResponse, RankingContext
from feed.rankingFunnel import (
    EMPTY_AFTER_FILTER_MESSAGE, RankingFunnel, apply_oracle_order, build_oracle_payload,
    build_session_insights, describe_engagement_style, resolve_session_optimization
)


def _ids(posts):
    return [post.id for post in posts]


@pytest.fixture
def candidates(make_post):
    return [
        make_post('p1', likes=10, tags=['cooking']),
        make_post('p2', likes=1000, tags=['python']),
        make_post('p3', likes=50, tags=['travel']),
        make_post('p4', likes=5, comments=3, tags=['music'], published='2024-05-01T13:00:00+00:00'),
    ]


def test_engagement_decides_at_equal_time(make_post):
    posts = [make_post('p1', likes=10), make_post('p2', likes=1000), make_post('p3', likes=50)]
    result = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), posts, limit=10)

    assert _ids(result.posts) == ['p2', 'p3', 'p1']
    assert result.oracle_used is False
    assert result.confidence_score == 0.6
    assert result.total_available == 3


def test_heuristic_ranking_is_idempotent(candidates):
    summary = BehaviorSummary(top_tags=['python'])
    first = RankingFunnel().rank_and_decide('user_1', summary, candidates, limit=10)
    second = RankingFunnel().rank_and_decide('user_1', summary, candidates, limit=10)

    assert _ids(first.posts) == _ids(second.posts)
    assert first.explanations == second.explanations


@pytest.mark.parametrize("oracle", [
    FakeOracle(error=OracleError("timed out")),
    FakeOracle(error=RuntimeError("connection reset")),
    FakeOracle(response={'order': 'not-an-array'}),
    FakeOracle(response={'order': []}),
    FakeOracle(response={'order': ['unknown-1', 'unknown-2']}),
    FakeOracle(response=['p1', 'p2']),
])
def test_oracle_failure_keeps_heuristic_order(candidates, oracle):
    expected = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), candidates, limit=10)
    result = RankingFunnel(oracle=oracle).rank_and_decide('user_1', BehaviorSummary(), candidates, limit=10)

    assert _ids(result.posts) == _ids(expected.posts)
    assert sorted(_ids(result.posts)) == ['p1', 'p2', 'p3', 'p4']
    assert result.oracle_used is False
    assert result.confidence_score == 0.6
    assert len(oracle.payloads) == 1


def test_oracle_order_applied(candidates):
    oracle = FakeOracle(response={'order': ['p3', 'nope', 'p3', 'p1'], 'notes': 'travel first'})
    result = RankingFunnel(oracle=oracle).rank_and_decide('user_1', BehaviorSummary(), candidates, limit=10)

    heuristic = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), candidates, limit=10)
    rest = [post_id for post_id in _ids(heuristic.posts) if post_id not in ('p3', 'p1')]

    assert _ids(result.posts) == ['p3', 'p1'] + rest
    assert result.oracle_used is True
    assert result.confidence_score == 0.9


def test_oracle_accepts_validated_response(candidates):
    oracle = FakeOracle(response=OracleResponse(order=['p4']))
    result = RankingFunnel(oracle=oracle).rank_and_decide('user_1', BehaviorSummary(), candidates, limit=10)
    assert result.posts[0].id == 'p4'
    assert result.oracle_used is True


def test_oracle_payload_shape(candidates):
    summary = BehaviorSummary(
        top_tags=['a', 'b', 'c', 'd', 'e', 'f'],
        mood_indicators=['engaged', 'passive'],
    )
    oracle = FakeOracle(response={'order': ['p1']})
    RankingFunnel(oracle=oracle).rank_and_decide(
        'user_1', summary, candidates, intent='learn_something', session_mode='learning', limit=10
    )

    payload = oracle.payloads[0]
    assert payload['userContextSummary'] == {
        'top_tags': ['a', 'b', 'c', 'd', 'e'],
        'scroll_behavior': 'medium',
        'engagement_style': 'casual_viewer',
        'mood': 'engaged',
        'request_intent': 'learn_something',
    }
    assert payload['intent'] == 'learn_something'
    assert payload['sessionMode'] == 'learning'
    assert {item['id'] for item in payload['candidateSummaries']} == {'p1', 'p2', 'p3', 'p4'}
    assert set(payload['candidateSummaries'][0]) == {
        'id', 'type', 'tags', 'creator', 'platform', 'stats', 'aiBoostScore', 'text_preview'
    }


def test_large_candidate_sets_prerank_before_oracle(make_post):
    posts = [make_post(f"p{i:02d}", likes=i) for i in range(60)]
    oracle = FakeOracle(response={'order': ['p00']})

    result = RankingFunnel(oracle=oracle).rank_and_decide('user_1', BehaviorSummary(), posts, limit=100)

    assert len(oracle.payloads[0]['candidateSummaries']) == 50
    assert len(result.posts) == 60
    assert result.total_available == 60
    # p00 has the lowest engagement, so it only reaches the oracle when it is in the head
    assert 'p00' not in {item['id'] for item in oracle.payloads[0]['candidateSummaries']}
    assert result.oracle_used is False


def test_large_candidate_sets_respect_limit(make_post):
    posts = [make_post(f"p{i:02d}", likes=i) for i in range(60)]
    oracle = FakeOracle(response={'order': ['p59', 'p10']})

    result = RankingFunnel(oracle=oracle).rank_and_decide('user_1', BehaviorSummary(), posts, limit=25)

    assert len(result.posts) == 25
    assert _ids(result.posts)[:2] == ['p59', 'p10']
    assert result.oracle_used is True


def test_default_blocklist_filters_text_and_tags(make_post):
    posts = [
        make_post('clean'),
        make_post('spammy', text='Totally not SPAM'),
        make_post('tagged', tags=['NSFW_art']),
    ]
    result = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), posts, limit=10)

    assert _ids(result.posts) == ['clean']
    assert result.total_available == 1


def test_feed_rules_blocklist_replaces_default(make_post):
    posts = [make_post('spammy', text='spam but allowed'), make_post('coin', tags=['Crypto'])]
    rules = FeedRules(blocklist=['crypto'])

    result = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), posts, limit=10, feed_rules=rules)
    assert _ids(result.posts) == ['spammy']


def test_moderation_file_terms_are_added(make_post, tmp_path):
    moderation = tmp_path / 'blocklist.txt'
    moderation.write_text("# moderation terms\nGambling\n\n")
    funnel = RankingFunnel(settings=RankingSettings(blocklist_file=str(moderation)))

    posts = [make_post('ok'), make_post('bet', text='Best gambling odds')]
    result = funnel.rank_and_decide('user_1', BehaviorSummary(), posts, limit=10)

    assert _ids(result.posts) == ['ok']


def test_everything_filtered_returns_message(make_post, fake_cache):
    posts = [make_post('a', text='spam'), make_post('b', tags=['hate'])]
    result = RankingFunnel(cache=fake_cache).rank_and_decide('user_1', BehaviorSummary(), posts)

    assert result.posts == []
    assert result.message == EMPTY_AFTER_FILTER_MESSAGE
    assert result.confidence_score == 0.0
    assert result.total_available == 0
    assert fake_cache.store == {}


def test_window_offset_and_limit(make_post):
    posts = [make_post(f"p{i}", likes=100 - i) for i in range(10)]
    result = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), posts, limit=3, offset=2)

    assert _ids(result.posts) == ['p2', 'p3', 'p4']
    assert result.total_available == 10


def test_offset_past_end_is_empty(make_post):
    posts = [make_post('a'), make_post('b')]
    result = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), posts, limit=5, offset=10)

    assert result.posts == []
    assert result.confidence_score == 0.0
    assert result.total_available == 2


def test_duplicate_candidates_are_dropped(make_post):
    posts = [make_post('a', likes=1), make_post('a', likes=1), make_post('b')]
    result = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), posts, limit=10)
    assert sorted(_ids(result.posts)) == ['a', 'b']


def test_explanations_cover_at_most_five_posts(make_post):
    posts = [make_post(f"p{i}", likes=50 - i) for i in range(8)]
    result = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), posts, limit=8)

    assert len(result.explanations) == 5
    assert set(result.explanations) == set(_ids(result.posts[:5]))


def test_boost_tags_from_feed_rules_reach_explanations(make_post):
    posts = [make_post('a', tags=['python'])]
    rules = FeedRules(boost_tags=['python'])

    result = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), posts, feed_rules=rules)
    assert 'matches your interest in python' in result.explanations['a']


def test_result_cached_and_posts_stored(make_post, fake_cache):
    store = FakePostStore()
    funnel = RankingFunnel(cache=fake_cache, post_store=store)
    posts = [make_post('a', likes=2), make_post('b', likes=1)]

    result = funnel.rank_and_decide('user_1', BehaviorSummary(), posts, limit=3)

    key = 'ranked_feed:user_1:3:0:default_scroll:default'
    assert key in fake_cache.store
    assert fake_cache.ttls[key] == 300
    assert store.upserts == [('user_1', _ids(result.posts))]


def test_store_and_cache_failures_are_tolerated(make_post):
    class FailingStore:
        def upsert_posts(self, posts, user_id):
            raise RuntimeError("write failed")

    funnel = RankingFunnel(cache=BrokenCache(), post_store=FailingStore())
    result = funnel.rank_and_decide('user_1', BehaviorSummary(), [make_post('a')])
    assert _ids(result.posts) == ['a']


def test_missing_summary_uses_default(make_post):
    result = RankingFunnel().rank_and_decide('user_1', None, [make_post('a')])
    assert result.session_optimization == 'balanced'
    assert result.session_insights['mode'] == 'default'


def _raise(*args, **kwargs):
    raise RuntimeError("scoring broke")


def test_boost_failure_falls_back_to_heuristic_order(make_post, monkeypatch):
    monkeypatch.setattr('feed.rankingFunnel.calculate_boost_scores', _raise)
    posts = [make_post('p1', likes=10), make_post('p2', likes=1000), make_post('p3', likes=50)]

    result = RankingFunnel(oracle=FakeOracle(response={'order': ['p1', 'p3', 'p2']})).rank_and_decide(
        'user_1', BehaviorSummary(), posts, limit=10)

    assert _ids(result.posts) == ['p2', 'p3', 'p1']
    assert result.oracle_used is False
    assert result.confidence_score == 0.6
    assert set(result.explanations) == {'p1', 'p2', 'p3'}


def test_explanation_failure_keeps_ranked_posts(make_post, monkeypatch):
    monkeypatch.setattr('feed.rankingFunnel.generate_explanations', _raise)
    posts = [make_post('p1', likes=10), make_post('p2', likes=1000), make_post('p3', likes=50)]

    result = RankingFunnel().rank_and_decide('user_1', BehaviorSummary(), posts, limit=10)

    assert _ids(result.posts) == ['p2', 'p3', 'p1']
    assert result.explanations == {}
    assert result.total_available == 3


def test_apply_oracle_order():
    class Post:
        def __init__(self, post_id):
            self.id = post_id

    posts = [Post('a'), Post('b'), Post('c')]
    assert _ids(apply_oracle_order(posts, ['c', 'x', 'c'])) == ['c', 'a', 'b']


def test_session_optimization():
    fast = BehaviorSummary.from_dict({'scrollBehavior': {'scrollSpeed': 'fast'}})
    slow = BehaviorSummary.from_dict({'scrollBehavior': {'scrollSpeed': 'slow'}})

    assert resolve_session_optimization(fast, 'default') == 'quick_hits'
    assert resolve_session_optimization(slow, 'default') == 'deep_dive'
    assert resolve_session_optimization(BehaviorSummary(), 'default') == 'balanced'
    assert resolve_session_optimization(fast, 'learning') == 'learning'


def test_session_insights():
    summary = BehaviorSummary.from_dict({
        'totalEvents': 150,
        'avgSessionDurationSeconds': 400,
        'engagementPatterns': {'likeRate': 0.25},
        'scrollBehavior': {'scrollSpeed': 'fast'},
    })
    insights = build_session_insights(summary, 'quick_hits')

    assert insights['mode'] == 'quick_hits'
    assert insights['suggestedDuration'] == 'medium (15-20 min)'
    assert insights['contentMix']['shorts'] == 70
    assert insights['nextActions'] == [
        'Share your favorite content', 'Create a post about your interests', 'Explore trending topics'
    ]


def test_oracle_engagement_style_labels():
    def style(**rates):
        return describe_engagement_style(BehaviorSummary.from_dict({'engagementPatterns': rates}).engagement_patterns)

    assert style(likeRate=0.5, skipRate=0.9) == 'active_engager'
    assert style(shareRate=0.2) == 'content_sharer'
    assert style(commentRate=0.1) == 'discussion_participant'
    assert style(skipRate=0.9) == 'content_browser'
    assert style() == 'casual_viewer'


def test_build_oracle_payload_truncates_preview(make_post):
    post = make_post('long', text='x' * 500, tags=[f"t{i}" for i in range(8)])
    context = RankingContext('user_1', BehaviorSummary(), [post], 'default_scroll', 'default')

    summary = build_oracle_payload(context, {'long': 1.5})['candidateSummaries'][0]
    assert len(summary['text_preview']) == 200
    assert len(summary['tags']) == 5
    assert summary['aiBoostScore'] == 1.5
