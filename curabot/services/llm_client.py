"""Chat-completion client for the hosted LLM.

Groq exposes an OpenAI-compatible API, so the ``openai`` SDK is pointed at
``GROQ_BASE_URL``. Callers get raw text back from :meth:`LLMClient.complete_json`
and turn it into a typed object with :func:`parse_reply`, which never raises:
a reply that does not match the expected shape yields ``None`` and the caller
falls back to its own default.
"""
import json
import logging
import re
from typing import Optional, TypeVar

from openai import OpenAI, OpenAIError
from pydantic import BaseModel
from pydantic import ValidationError as PydanticValidationError

from curabot.core.errors import UpstreamError

logger = logging.getLogger(__name__)

ModelT = TypeVar('ModelT', bound=BaseModel)

_THINK_BLOCK = re.compile(r'<think>.*?</think>', re.DOTALL)
_CODE_FENCE = re.compile(r'^```(?:json)?\s*|\s*```$')


class LLMClient:
    def __init__(self, api_key: str, base_url: str, timeout: float = 60.0) -> None:
        self._client: Optional[OpenAI] = None
        if api_key:
            self._client = OpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    def complete_json(
        self,
        prompt: str,
        *,
        model: str,
        temperature: float = 0.3,
        max_tokens: int = 1024,
    ) -> str:
        if self._client is None:
            raise UpstreamError('LLM provider is not configured.')

        try:
            response = self._client.chat.completions.create(
                messages=[{"role": "user", "content": prompt}],
                model=model,
                temperature=temperature,
                max_tokens=max_tokens,
                top_p=0.9,
                response_format={"type": "json_object"},
            )
        except OpenAIError as exc:
            logger.warning('LLM call to %s failed: %s', model, exc)
            raise UpstreamError('AI service is unavailable. Please try again later.') from exc

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise UpstreamError('AI service returned an empty reply.')
        return content


def parse_reply(raw: str, model_cls: type[ModelT]) -> Optional[ModelT]:
    cleaned = _THINK_BLOCK.sub('', raw).strip()
    cleaned = _CODE_FENCE.sub('', cleaned).strip()

    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError:
        logger.warning('LLM reply is not valid JSON for %s', model_cls.__name__)
        return None

    try:
        return model_cls.model_validate(payload)
    except PydanticValidationError as exc:
        logger.warning('LLM reply does not match %s: %s', model_cls.__name__, exc.error_count())
        return None
