from types import SimpleNamespace

import httpx
import openai
import pytest

from client.oracle import Client, parse_oracle_response
from feed.exceptions import OracleError
from feed.models import validate_oracle_response


class FakeCompletions:
    def __init__(self, content=None, error=None):
        self.content = content
        self.error = error
        self.requests = []

    def create(self, **kwargs):
        self.requests.append(kwargs)
        if self.error:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _oracle(completions):
    oracle = Client(api_key='test-key', timeout=2.0)
    oracle.client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return oracle


def test_parse_plain_json():
    response = parse_oracle_response('{"order": ["a", "b"], "notes": "fresh first"}')
    assert response.order == ['a', 'b']
    assert response.notes == 'fresh first'


def test_parse_code_fenced_json():
    response = parse_oracle_response('```json\n{"order": ["x"]}\n```')
    assert response.order == ['x']
    assert response.notes is None


@pytest.mark.parametrize("content", [
    'not json at all',
    '',
    None,
    '{"order": "not-an-array"}',
    '{"order": []}',
    '{"notes": "no order"}',
    '["a", "b"]',
])
def test_parse_rejects_invalid_replies(content):
    with pytest.raises(OracleError):
        parse_oracle_response(content)


def test_validate_rejects_non_objects():
    with pytest.raises(OracleError):
        validate_oracle_response('order')


def test_rerank_sends_payload_and_parses_reply():
    completions = FakeCompletions(content='{"order": ["p2", "p1"]}')
    oracle = _oracle(completions)

    response = oracle.rerank({'candidateSummaries': [{'id': 'p1'}, {'id': 'p2'}], 'intent': 'default_scroll'})

    assert response.order == ['p2', 'p1']
    request = completions.requests[0]
    assert request['response_format'] == {'type': 'json_object'}
    assert request['messages'][0]['role'] == 'system'
    assert '"candidateSummaries"' in request['messages'][1]['content']


def test_rerank_timeout_becomes_oracle_error():
    timeout = openai.APITimeoutError(request=httpx.Request('POST', 'https://api.openai.com/v1/chat/completions'))
    oracle = _oracle(FakeCompletions(error=timeout))

    with pytest.raises(OracleError, match='timed out'):
        oracle.rerank({'candidateSummaries': []})


def test_rerank_invalid_reply_becomes_oracle_error():
    oracle = _oracle(FakeCompletions(content='{"order": "not-an-array"}'))
    with pytest.raises(OracleError):
        oracle.rerank({'candidateSummaries': []})


def test_client_requires_api_key(monkeypatch):
    monkeypatch.delenv('OPENAI_API_KEY', raising=False)
    with pytest.raises(ValueError):
        Client()
