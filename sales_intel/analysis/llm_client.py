"""ModelInvoker implementations: Anthropic (primary) with OpenAI fallback.

Each provider is an adapter that maps the common
invoke(system_prompt, user_prompt, max_tokens, temperature) call onto its
own request/response envelope. No provider state lives at module level.
"""

from __future__ import annotations

import asyncio
import logging

import anthropic
from openai import AsyncOpenAI

from sales_intel.config import Config
from sales_intel.errors import ModelInvocationError, UnsupportedModelError
from sales_intel.interfaces import ModelInvoker

logger = logging.getLogger(__name__)


class AnthropicInvoker:
    """Claude via the Messages API."""

    provider = "anthropic"

    def __init__(self, api_key: str, model: str, timeout: int = 120):
        if not model.startswith("claude"):
            raise UnsupportedModelError(f"Anthropic adapter cannot serve model '{model}'")
        self.model = model
        self.timeout = timeout
        self._client = anthropic.AsyncAnthropic(api_key=api_key)

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4000,
        temperature: float = 0.1,
    ) -> str:
        response = await asyncio.wait_for(
            self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                system=system_prompt,
                messages=[{"role": "user", "content": user_prompt}],
            ),
            timeout=self.timeout,
        )
        return "".join(
            block.text for block in response.content if getattr(block, "type", "") == "text"
        )


class OpenAIInvoker:
    """GPT models via Chat Completions."""

    provider = "openai"

    def __init__(self, api_key: str, model: str, timeout: int = 120):
        if not model.startswith(("gpt", "o1", "o3", "o4")):
            raise UnsupportedModelError(f"OpenAI adapter cannot serve model '{model}'")
        self.model = model
        self.timeout = timeout
        self._client = AsyncOpenAI(api_key=api_key)

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4000,
        temperature: float = 0.1,
    ) -> str:
        response = await asyncio.wait_for(
            self._client.chat.completions.create(
                model=self.model,
                max_tokens=max_tokens,
                temperature=temperature,
                messages=[
                    {"role": "system", "content": system_prompt},
                    {"role": "user", "content": user_prompt},
                ],
            ),
            timeout=self.timeout,
        )
        return response.choices[0].message.content or ""


class FallbackInvoker:
    """Try each invoker in order; the first successful response wins.

    Once a provider fails with a billing/auth error it is skipped for the
    rest of this invoker's lifetime.
    """

    def __init__(self, invokers: list[ModelInvoker]):
        if not invokers:
            raise ModelInvocationError(
                "No LLM provider available. Set ANTHROPIC_API_KEY or OPENAI_API_KEY."
            )
        self.invokers = invokers
        self._disabled: set[int] = set()

    async def invoke(
        self,
        system_prompt: str,
        user_prompt: str,
        max_tokens: int = 4000,
        temperature: float = 0.1,
    ) -> str:
        last_error: Exception | None = None
        for index, invoker in enumerate(self.invokers):
            if index in self._disabled:
                continue
            name = getattr(invoker, "provider", invoker.__class__.__name__)
            try:
                return await invoker.invoke(system_prompt, user_prompt, max_tokens, temperature)
            except asyncio.TimeoutError as e:
                logger.warning("%s call timed out", name)
                last_error = e
            except anthropic.APIStatusError as e:
                if _is_billing_error(e):
                    logger.warning("%s billing/auth error, disabling for this session", name)
                    self._disabled.add(index)
                else:
                    logger.error("%s error: %s", name, e)
                last_error = e
            except Exception as e:
                logger.error("%s error: %s", name, e)
                last_error = e
            if index + 1 < len(self.invokers):
                logger.info("Falling back to next LLM provider")
        raise ModelInvocationError(f"All LLM providers failed: {last_error}") from last_error


def _is_billing_error(error: anthropic.APIStatusError) -> bool:
    if error.status_code not in (400, 401, 402, 403):
        return False
    msg = str(error).lower()
    return error.status_code in (401, 403) or any(w in msg for w in ("credit", "balance", "billing"))


def build_model_invoker(config: Config) -> FallbackInvoker:
    """Anthropic first (if keyed), then OpenAI (if keyed)."""
    invokers: list[ModelInvoker] = []
    if config.anthropic_api_key:
        invokers.append(AnthropicInvoker(config.anthropic_api_key, config.anthropic_model, config.llm_timeout))
    if config.openai_api_key:
        invokers.append(OpenAIInvoker(config.openai_api_key, config.openai_model, config.llm_timeout))
    return FallbackInvoker(invokers)
