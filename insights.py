from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass, field
from typing import Optional, Protocol

from google import genai
from google.genai import types

from config import get_settings
from errors import InsightDataError

logger = logging.getLogger(__name__)

MAX_INSIGHTS = 3
_FENCE_RE = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)


@dataclass(frozen=True)
class InsightRequest:
    period_label: str
    income_cents: int
    expense_cents: int
    balance_cents: int
    savings_rate: float
    # category name -> (amount_cents, percent of expenses)
    categories: dict[str, tuple[int, float]] = field(default_factory=dict)


class InsightGenerator(Protocol):
    def generate_insights(self, request: InsightRequest) -> list[str]: ...


def _money(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def build_insight_prompt(request: InsightRequest) -> str:
    category_lines = "\n".join(
        f"- {name}: {_money(amount)} ({percent}%)"
        for name, (amount, percent) in request.categories.items()
    )
    return f"""
You are an expert personal finance coach reviewing a user's spending habits.

Give exactly {MAX_INSIGHTS} short, realistic observations for the user's financial report.
Be encouraging, but point out where the user is overspending.

Report period: {request.period_label}
- Total income: {_money(request.income_cents)}
- Total expenses: {_money(request.expense_cents)}
- Available balance: {_money(request.balance_cents)}
- Savings rate: {request.savings_rate}%

Expense breakdown:
{category_lines or "- none"}

Guidelines:
- If the savings rate is above 70%, appreciate it.
- If expenses are more than 40% of income, point out overspending.
- Name the largest expense category and suggest moderation.
- Each insight must be one short, natural sentence.

Respond with a JSON array of strings only, for example:
["Insight 1", "Insight 2", "Insight 3"]
""".strip()


def parse_insights(raw: Optional[str]) -> list[str]:
    if raw is None:
        raise InsightDataError("Insight response was empty")
    cleaned = _FENCE_RE.sub("", raw.strip()).strip()
    if not cleaned:
        raise InsightDataError("Insight response was empty")
    try:
        payload = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise InsightDataError("Insight response is not valid JSON") from exc
    if not isinstance(payload, list):
        raise InsightDataError("Insight response is not a JSON array")
    insights = [
        item.strip() for item in payload if isinstance(item, str) and item.strip()
    ]
    return insights[:MAX_INSIGHTS]


class GeminiInsightGenerator:
    def __init__(
        self,
        client: Optional[genai.Client] = None,
        *,
        model: Optional[str] = None,
        timeout_secs: Optional[float] = None,
    ) -> None:
        settings = get_settings()
        self.model = model or settings.gemini_model
        self.timeout_secs = (
            timeout_secs if timeout_secs is not None else settings.insight_timeout_secs
        )
        if client is None and settings.gemini_api_key:
            client = genai.Client(
                api_key=settings.gemini_api_key,
                http_options=types.HttpOptions(timeout=int(self.timeout_secs * 1000)),
            )
        self.client = client

    def generate_insights(self, request: InsightRequest) -> list[str]:
        if self.client is None:
            return []
        try:
            response = self.client.models.generate_content(
                model=self.model,
                contents=build_insight_prompt(request),
                config=types.GenerateContentConfig(
                    temperature=0,
                    response_mime_type="application/json",
                ),
            )
            return parse_insights(response.text)
        except InsightDataError as exc:
            logger.warning(
                f"insights: malformed response period={request.period_label} "
                f"error={exc}"
            )
            return []
        except Exception as exc:
            logger.warning(
                f"insights: generation failed period={request.period_label} "
                f"error={exc}"
            )
            return []
