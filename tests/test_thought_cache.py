"""Tests for the thought signature cache."""

from concurrent.futures import ThreadPoolExecutor

from claude_gateway.converter import convert_response
from claude_gateway.models.openai import OpenAIMessagesResponse
from claude_gateway.providers import OpenAIProvider
from claude_gateway.router import ProviderRouter
from claude_gateway.streaming import StreamTranslator
from claude_gateway.thought_cache import ThoughtSignatureCache, get_thought_cache


def test_store_and_lookup(thought_cache):
    thought_cache.store("call_1", "sig-1")
    assert thought_cache.lookup("call_1") == "sig-1"
    assert thought_cache.lookup("call_2") is None
    assert thought_cache.lookup(None) is None


def test_empty_values_ignored(thought_cache):
    thought_cache.store("", "sig")
    thought_cache.store("call_1", "")
    assert len(thought_cache) == 0


def test_overwrite(thought_cache):
    thought_cache.store("call_1", "old")
    thought_cache.store("call_1", "new")
    assert thought_cache.lookup("call_1") == "new"


def test_clears_everything_when_over_capacity():
    cache = ThoughtSignatureCache(max_entries=3)
    for i in range(4):
        cache.store(f"call_{i}", f"sig_{i}")
    assert len(cache) == 4

    cache.store("call_new", "sig_new")
    assert len(cache) == 1
    assert cache.lookup("call_0") is None
    assert cache.lookup("call_new") == "sig_new"


def test_concurrent_stores():
    cache = ThoughtSignatureCache(max_entries=10000)
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda i: cache.store(f"call_{i}", f"sig_{i}"), range(500)))
    assert len(cache) == 500
    assert cache.lookup("call_499") == "sig_499"


def test_global_cache_is_shared():
    assert get_thought_cache() is get_thought_cache()


def test_empty_injected_cache_is_used():
    """An empty cache is falsy through ``__len__`` but must not be swapped for the global one."""
    cache = ThoughtSignatureCache()
    assert len(cache) == 0

    assert StreamTranslator("m", cache).thought_cache is cache
    assert OpenAIProvider(thought_cache=cache).thought_cache is cache

    response = OpenAIMessagesResponse.model_validate({
        "choices": [{
            "message": {"role": "assistant", "tool_calls": [
                {"id": "call_empty", "function": {"name": "f", "arguments": "{}"}, "signature": "S"},
            ]},
            "finish_reason": "tool_calls",
        }],
    })
    convert_response(response, "claude-3-sonnet", cache)
    assert cache.lookup("call_empty") == "S"
    assert get_thought_cache().lookup("call_empty") is None


def test_router_shares_injected_cache_with_adapters(gateway_config):
    cache = ThoughtSignatureCache()
    router = ProviderRouter(gateway_config, thought_cache=cache)
    assert all(adapter.thought_cache is cache for adapter in router.adapters.values())
