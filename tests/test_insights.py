from types import SimpleNamespace

import pytest

from errors import InsightDataError
from insights import (
    GeminiInsightGenerator,
    InsightRequest,
    build_insight_prompt,
    parse_insights,
)


REQUEST = InsightRequest(
    period_label="September 1–30, 2026",
    income_cents=1_000_000,
    expense_cents=250_000,
    balance_cents=750_000,
    savings_rate=75.0,
    categories={"food": (150_000, 60.0), "rent": (100_000, 40.0)},
)


class _FakeModels:
    def __init__(self, text=None, exc=None):
        self.text = text
        self.exc = exc
        self.calls = []

    def generate_content(self, *, model, contents, config=None):
        self.calls.append({"model": model, "contents": contents})
        if self.exc:
            raise self.exc
        return SimpleNamespace(text=self.text)


def _generator(models: _FakeModels) -> GeminiInsightGenerator:
    client = SimpleNamespace(models=models)
    return GeminiInsightGenerator(client=client, model="test-model", timeout_secs=1)


def test_parse_insights_plain_array():
    assert parse_insights('["One.", "Two.", "Three."]') == ["One.", "Two.", "Three."]


def test_parse_insights_strips_code_fence_and_trims():
    raw = '```json\n["a", "  b  ", "", 4, "c", "d"]\n```'
    assert parse_insights(raw) == ["a", "b", "c"]


@pytest.mark.parametrize("raw", [None, "", "not json", '{"insights": []}'])
def test_parse_insights_rejects_malformed(raw):
    with pytest.raises(InsightDataError):
        parse_insights(raw)


def test_prompt_mentions_aggregates():
    prompt = build_insight_prompt(REQUEST)
    assert "September 1–30, 2026" in prompt
    assert "10,000.00" in prompt
    assert "- food: 1,500.00 (60.0%)" in prompt
    assert "Savings rate: 75.0%" in prompt


def test_generator_returns_parsed_insights():
    models = _FakeModels(text='["Great savings.", "Food is high."]')
    assert _generator(models).generate_insights(REQUEST) == [
        "Great savings.",
        "Food is high.",
    ]
    assert models.calls[0]["model"] == "test-model"


def test_generator_degrades_on_malformed_output():
    models = _FakeModels(text="Sure! Here are some insights: ...")
    assert _generator(models).generate_insights(REQUEST) == []


def test_generator_degrades_on_timeout():
    models = _FakeModels(exc=TimeoutError("deadline exceeded"))
    assert _generator(models).generate_insights(REQUEST) == []


def test_generator_without_client_skips_network():
    generator = _generator(_FakeModels(text="[]"))
    generator.client = None
    assert generator.generate_insights(REQUEST) == []
