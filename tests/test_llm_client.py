from __future__ import annotations

import asyncio

import anthropic
import httpx
import pytest

from sales_intel.analysis.llm_client import (
    AnthropicInvoker,
    FallbackInvoker,
    OpenAIInvoker,
    build_model_invoker,
)
from sales_intel.config import Config
from sales_intel.errors import ModelInvocationError, UnsupportedModelError

from conftest import FakeModel


def _status_error(status: int, message: str) -> anthropic.APIStatusError:
    request = httpx.Request("POST", "https://api.anthropic.com/v1/messages")
    return anthropic.APIStatusError(message, response=httpx.Response(status, request=request), body=None)


@pytest.mark.asyncio
async def test_first_successful_provider_wins():
    primary, secondary = FakeModel("from primary"), FakeModel("from secondary")
    invoker = FallbackInvoker([primary, secondary])
    assert await invoker.invoke("sys", "user") == "from primary"
    assert secondary.calls == []


@pytest.mark.asyncio
async def test_falls_back_on_error_and_timeout():
    invoker = FallbackInvoker([
        FakeModel(error=asyncio.TimeoutError()),
        FakeModel(error=RuntimeError("overloaded")),
        FakeModel("third time lucky"),
    ])
    assert await invoker.invoke("sys", "user") == "third time lucky"


@pytest.mark.asyncio
async def test_billing_error_disables_provider_for_later_calls():
    broken = FakeModel(error=_status_error(402, "Your credit balance is too low"))
    backup = FakeModel("ok")
    invoker = FallbackInvoker([broken, backup])
    await invoker.invoke("sys", "a")
    await invoker.invoke("sys", "b")
    assert len(broken.calls) == 1
    assert len(backup.calls) == 2


@pytest.mark.asyncio
async def test_transient_status_error_does_not_disable():
    flaky = FakeModel(error=_status_error(529, "overloaded"))
    invoker = FallbackInvoker([flaky, FakeModel("ok")])
    await invoker.invoke("sys", "a")
    await invoker.invoke("sys", "b")
    assert len(flaky.calls) == 2


@pytest.mark.asyncio
async def test_all_providers_failing_raises():
    invoker = FallbackInvoker([FakeModel(error=RuntimeError("a")), FakeModel(error=RuntimeError("b"))])
    with pytest.raises(ModelInvocationError, match="b"):
        await invoker.invoke("sys", "user")


def test_no_providers_configured_raises():
    with pytest.raises(ModelInvocationError):
        build_model_invoker(Config())


def test_build_model_invoker_orders_anthropic_first():
    invoker = build_model_invoker(Config(anthropic_api_key="a", openai_api_key="o"))
    assert [type(i) for i in invoker.invokers] == [AnthropicInvoker, OpenAIInvoker]


def test_adapters_reject_foreign_models():
    with pytest.raises(UnsupportedModelError):
        AnthropicInvoker("key", "gpt-4o")
    with pytest.raises(UnsupportedModelError):
        OpenAIInvoker("key", "claude-sonnet-4-5")
