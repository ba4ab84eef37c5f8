"""
AI Generation Service

Provider-neutral request/response contract for the generative model plus
the OpenAI chat-completions adapter. The orchestrator only ever sees
``CompletionRequest`` and ``CompletionResponse``; vendor exceptions are
translated into the Lingoloop taxonomy here, except rate limits, which
are passed through untouched so the backoff controller can retry them.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

import openai
from openai import AsyncOpenAI

from lingoloop.common.config import AIConfig
from lingoloop.common.error_handling import ContentPolicyRefusalError, ProviderError
from lingoloop.common.logger import app_logger

logger = app_logger.getChild("generation.ai_client")

CONTENT_POLICY_CODES = frozenset({"content_policy_violation", "content_filter"})


@dataclass
class CompletionRequest:
    system_prompt: str
    user_prompt: str
    item_count: int
    model: str
    temperature: float
    max_tokens: int


@dataclass
class CompletionResponse:
    """
    Raw outcome of one completion call.

    ``content`` is None or empty when the provider returned nothing usable;
    ``reasoning_tokens`` tells apart "thought, then ran out of budget"
    from a plain empty answer.
    """
    content: Optional[str]
    finish_reason: Optional[str] = None
    refusal: Optional[str] = None
    reasoning_tokens: int = 0
    usage: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_empty(self) -> bool:
        return not (self.content or "").strip()


class AIGenerationService(ABC):
    """Contract for a text-generation backend."""

    @abstractmethod
    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        """
        Run one completion.

        Raises:
            ContentPolicyRefusalError: the provider refused the request
            ProviderError: any other non-retryable provider failure
            Exception: rate-limit failures, left for the backoff controller
        """
        pass


class OpenAIGenerationService(AIGenerationService):
    """Chat-completions backend using the official async client."""

    def __init__(self, config: AIConfig, client: Optional[AsyncOpenAI] = None):
        self.config = config
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            if not self.config.api_key:
                raise ProviderError("AI API key is not configured. Set AI_API_KEY or OPENAI_API_KEY.")
            self._client = AsyncOpenAI(
                api_key=self.config.api_key,
                base_url=self.config.api_base,
                timeout=self.config.timeout,
                max_retries=0,
            )
        return self._client

    async def complete(self, request: CompletionRequest) -> CompletionResponse:
        client = self._get_client()
        try:
            completion = await client.chat.completions.create(
                model=request.model,
                messages=[
                    {"role": "system", "content": request.system_prompt},
                    {"role": "user", "content": request.user_prompt},
                ],
                temperature=request.temperature,
                max_completion_tokens=request.max_tokens,
                response_format={"type": "json_object"},
            )
        except openai.RateLimitError:
            raise
        except openai.BadRequestError as e:
            if getattr(e, "code", None) in CONTENT_POLICY_CODES:
                raise ContentPolicyRefusalError(
                    "The provider declined to generate this content", cause=e
                ) from e
            raise ProviderError(f"Provider rejected the request: {e}", cause=e) from e
        except openai.APIError as e:
            raise ProviderError(f"Provider call failed: {e}", cause=e) from e

        if not completion.choices:
            return CompletionResponse(content=None)

        choice = completion.choices[0]
        usage: Dict[str, Any] = {}
        reasoning_tokens = 0
        if completion.usage is not None:
            usage = completion.usage.model_dump()
            details = completion.usage.completion_tokens_details
            if details is not None and details.reasoning_tokens:
                reasoning_tokens = details.reasoning_tokens

        return CompletionResponse(
            content=choice.message.content,
            finish_reason=choice.finish_reason,
            refusal=getattr(choice.message, "refusal", None),
            reasoning_tokens=reasoning_tokens,
            usage=usage,
        )


def create_generation_service(config: AIConfig) -> AIGenerationService:
    """Build the configured backend."""
    if config.provider != "openai":
        raise ValueError(f"Unsupported AI provider: {config.provider}")
    logger.info(f"Using OpenAI generation service with model {config.model_name}")
    return OpenAIGenerationService(config)
