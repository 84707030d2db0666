from __future__ import annotations

import pytest

from websynth.services.prompt_store import render_prompt


def test_render_prompt_substitutes_template_values():
    prompt = render_prompt(
        "multi_query.generate_queries",
        count=5,
        user_prompt="What is machine learning?",
    )
    assert "exactly 5 diverse" in prompt
    assert '"What is machine learning?"' in prompt


def test_render_prompt_joins_line_lists():
    prompt = render_prompt("multi_query.summarize", user_prompt="q", contexts="CONTEXTS")
    assert "Gathered Information:\nCONTEXTS\n" in prompt


def test_failed_context_placeholder():
    assert render_prompt("multi_query.failed_context", query="q3") == '[Failed to retrieve context for: "q3"]'


def test_render_prompt_raises_for_unknown_key():
    with pytest.raises(KeyError):
        render_prompt("missing.prompt.key")


def test_render_prompt_raises_for_missing_value():
    with pytest.raises(KeyError, match="user_prompt"):
        render_prompt("multi_query.generate_queries", count=5)


def test_render_prompt_rejects_section_keys():
    with pytest.raises(TypeError):
        render_prompt("multi_query")
