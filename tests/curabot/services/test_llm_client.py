from types import SimpleNamespace

import pytest
from openai import OpenAIError
from pydantic import BaseModel

from curabot.core.errors import UpstreamError
from curabot.services.llm_client import LLMClient, parse_reply


class Reply(BaseModel):
    answer: str
    score: int = 0


class RecordingCompletions:
    def __init__(self, content=None, error=None) -> None:
        self.content = content
        self.error = error
        self.calls: list[dict] = []

    def create(self, **kwargs):
        self.calls.append(kwargs)
        if self.error is not None:
            raise self.error
        message = SimpleNamespace(content=self.content)
        return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def client_with(completions: RecordingCompletions) -> LLMClient:
    client = LLMClient(api_key='test-key', base_url='https://llm.invalid/v1')
    client._client = SimpleNamespace(chat=SimpleNamespace(completions=completions))
    return client


def test_client_without_key_is_not_configured() -> None:
    client = LLMClient(api_key='', base_url='https://llm.invalid/v1')

    assert client.is_configured is False
    with pytest.raises(UpstreamError) as exception_info:
        client.complete_json('hello', model='any-model')

    assert exception_info.value.status_code == 502


def test_complete_json_requests_json_object() -> None:
    completions = RecordingCompletions(content='{"answer": "ok"}')

    raw = client_with(completions).complete_json('Say ok', model='small-model', temperature=0.1)

    assert raw == '{"answer": "ok"}'
    call = completions.calls[0]
    assert call['model'] == 'small-model'
    assert call['temperature'] == 0.1
    assert call['response_format'] == {'type': 'json_object'}
    assert call['messages'] == [{'role': 'user', 'content': 'Say ok'}]


def test_complete_json_wraps_provider_errors() -> None:
    completions = RecordingCompletions(error=OpenAIError('connection reset'))

    with pytest.raises(UpstreamError) as exception_info:
        client_with(completions).complete_json('Say ok', model='small-model')

    assert exception_info.value.message == 'AI service is unavailable. Please try again later.'


def test_complete_json_rejects_empty_reply() -> None:
    with pytest.raises(UpstreamError):
        client_with(RecordingCompletions(content='')).complete_json('Say ok', model='small-model')


@pytest.mark.parametrize('raw', [
    '{"answer": "yes", "score": 3}',
    '<think>let me reason about it</think>\n{"answer": "yes", "score": 3}',
    '```json\n{"answer": "yes", "score": 3}\n```',
])
def test_parse_reply_accepts_wrapped_json(raw: str) -> None:
    assert parse_reply(raw, Reply) == Reply(answer='yes', score=3)


@pytest.mark.parametrize('raw', ['I cannot help with that', '{"score": 1}', '[1, 2]'])
def test_parse_reply_returns_none_for_unusable_replies(raw: str) -> None:
    assert parse_reply(raw, Reply) is None
