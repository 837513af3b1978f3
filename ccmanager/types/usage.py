"""Usage telemetry models."""

from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any


class UsageMetric(str, Enum):
    """Quantity a usage query maps samples to."""

    TOKENS = "tokens"
    API_CALLS = "api_calls"
    COST = "cost"


class TimeRange(Enum):
    """Look-back windows offered for usage queries."""

    DAY = timedelta(hours=24)
    WEEK = timedelta(days=7)
    MONTH = timedelta(days=30)
    QUARTER = timedelta(days=90)


@dataclass(frozen=True)
class UsageSample:
    """One observation of token usage, API calls and cost."""

    date: datetime
    tokens: dict[str, int] = field(default_factory=dict)  # provider -> tokens
    api_calls: int = 0
    cost: float = 0.0

    @property
    def total_tokens(self) -> int:
        return sum(self.tokens.values())

    def to_dict(self) -> dict[str, Any]:
        return {
            "date": self.date.isoformat(),
            "tokens": dict(self.tokens),
            "api_calls": self.api_calls,
            "cost": self.cost,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "UsageSample":
        date = datetime.fromisoformat(data["date"])
        if date.tzinfo is None:
            date = date.replace(tzinfo=timezone.utc)
        return cls(
            date=date,
            tokens={str(k): int(v) for k, v in (data.get("tokens") or {}).items()},
            api_calls=int(data.get("api_calls", 0)),
            cost=float(data.get("cost", 0.0)),
        )


class AssistantModel(Enum):
    """Assistant model tiers with their wire id and per-token rate in USD."""

    OPUS = ("opus", "claude-3-opus-20240229", 3e-5)
    SONNET = ("sonnet", "claude-3-sonnet-20240229", 1e-5)
    HAIKU = ("haiku", "claude-3-haiku-20240307", 2.5e-6)

    def __init__(self, label: str, model_id: str, rate: float) -> None:
        self.label = label
        self.model_id = model_id
        self.rate = rate

    @classmethod
    def from_label(cls, label: str) -> "AssistantModel":
        for model in cls:
            if model.label == label.lower():
                return model
        raise ValueError(f"Unknown model: {label}")
