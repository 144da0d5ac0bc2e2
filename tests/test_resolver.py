"""
Tests for model name resolution.
"""
import pytest
from grappa import should

from nimbridge.config import DEFAULT_MODEL_MAPPING, ProxyConfig
from nimbridge.resolver import resolve_model


@pytest.mark.parametrize("requested,expected", sorted(DEFAULT_MODEL_MAPPING.items()))
def test_mapped_names_resolve_exactly(requested, expected, sink):
    resolve_model(requested, ProxyConfig(), sink) | should.equal(expected)


@pytest.mark.parametrize("requested", ["gpt-5", "GPT-4", "", None, "llama"])
def test_unmapped_names_use_large_fallback(requested, sink):
    resolve_model(requested, ProxyConfig(), sink) | should.equal("deepseek-ai/deepseek-v3.2")


def test_custom_table_and_fallback(sink):
    config = ProxyConfig(
        model_mapping={"house-model": "vendor/house-1"},
        fallback_models={"large": "vendor/big"},
    )
    resolve_model("house-model", config, sink) | should.equal("vendor/house-1")
    resolve_model("gpt-4", config, sink) | should.equal("vendor/big")


def test_resolution_is_reported(sink):
    resolve_model("gpt-4", ProxyConfig(), sink)
    resolve_model("unknown", ProxyConfig(), sink)

    events = sink.find("model", "info")
    events | should.have.length(2)
    events[0][3] | should.equal(
        {"requested": "gpt-4", "mapped": "meta/llama-3.3-70b-instruct", "isFallback": False}
    )
    events[1][3]["isFallback"] | should.be.true
    events[1][2] | should.equal("Model selection: unknown → deepseek-ai/deepseek-v3.2")
