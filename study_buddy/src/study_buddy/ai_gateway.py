"""
AI gateway client

OpenAI-compatible chat-completions gateway with a primary model and a single
fallback model used only when the primary answers with empty content.
"""

import logging
import time
from typing import Any, Dict, List, Optional

from openai import APIConnectionError, APIStatusError, AsyncOpenAI

from study_buddy import config
from study_buddy.errors import UpstreamError, UpstreamQuotaError, UpstreamRateLimitError

logger = logging.getLogger(__name__)


class AIGateway:
    """
    Thin wrapper around AsyncOpenAI pointed at the AI gateway.

    Client-side retries are disabled: the only retry is the one fallback-model
    call in `complete_with_fallback`.
    """

    def __init__(
        self,
        api_key: Optional[str] = None,
        base_url: str = config.AI_GATEWAY_URL,
        primary_model: str = config.AI_PRIMARY_MODEL,
        fallback_model: str = config.AI_FALLBACK_MODEL,
        max_tokens: int = config.AI_MAX_TOKENS,
        client: Optional[AsyncOpenAI] = None,
    ):
        if client is None:
            api_key = api_key or config.AI_GATEWAY_API_KEY
            if not api_key:
                raise ValueError("AI_GATEWAY_API_KEY not found in environment variables")
            client = AsyncOpenAI(api_key=api_key, base_url=base_url, max_retries=0)
        self.client = client
        self.primary_model = primary_model
        self.fallback_model = fallback_model
        self.max_tokens = max_tokens

    async def complete(self, messages: List[Dict[str, Any]], model: str) -> Optional[str]:
        """
        One chat completion.

        Returns:
            The reply text, or None if the gateway answered OK with no content.

        Raises:
            UpstreamRateLimitError: gateway returned 429
            UpstreamQuotaError: gateway returned 402
            UpstreamError: any other failure
        """
        logger.info(f"[AIGateway] Calling model: {model}")
        start = time.perf_counter()
        try:
            response = await self.client.chat.completions.create(
                model=model,
                messages=messages,
                max_tokens=self.max_tokens,
            )
        except APIStatusError as e:
            logger.error(f"❌ [AIGateway] Gateway error {e.status_code}: {e}")
            if e.status_code == 429:
                raise UpstreamRateLimitError()
            if e.status_code == 402:
                raise UpstreamQuotaError()
            raise UpstreamError(f"AI service error: {e.status_code}")
        except APIConnectionError as e:
            logger.error(f"❌ [AIGateway] Could not reach gateway: {e}")
            raise UpstreamError()

        elapsed_ms = int((time.perf_counter() - start) * 1000)
        logger.info(f"[AIGateway] {model} answered in {elapsed_ms}ms")

        if not response.choices:
            return None
        content = response.choices[0].message.content
        if not isinstance(content, str) or not content.strip():
            return None
        return content

    async def complete_with_fallback(self, messages: List[Dict[str, Any]]) -> str:
        """Primary model, then the fallback model once if the primary came back empty."""
        reply = await self.complete(messages, self.primary_model)
        if reply is not None:
            return reply

        logger.warning(f"⚠️ [AIGateway] No content from {self.primary_model}, trying {self.fallback_model}")
        reply = await self.complete(messages, self.fallback_model)
        if reply is None:
            logger.error("❌ [AIGateway] No content from fallback model")
            raise UpstreamError("No response from AI")
        return reply
