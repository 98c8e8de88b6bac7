"""
Result types of the AI adapters.

Model output is loosely shaped JSON; these models pin the contract the rest of
the backend relies on and fall back to safe defaults for anything missing or
mistyped.
"""

from typing import Any, Dict, List, Optional

import pydantic
from pydantic import BaseModel, Field

from models.expense import SplitGroup
from utils.money import to_cents

OCR_CONFIDENCE_THRESHOLD = 0.7
SUSPICIOUS_AMOUNT_THRESHOLD = 5000  # Major currency units
EXTREME_VALUE_THRESHOLD = 99999


def _number_or_none(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.replace(",", "").lstrip("$"))
        except ValueError:
            return None
    return None


class ParsedExpense(BaseModel):
    """Expense details extracted from a free-text message."""

    amount: Optional[float] = None  # Major currency units
    description: str = "Expense"
    confidence: float = Field(0.0, ge=0.0, le=1.0)
    participants: List[str] = Field(default_factory=list)
    payer: Optional[str] = None

    @pydantic.field_validator("amount", mode="before")
    def coerce_amount(cls, v):
        amount = _number_or_none(v)
        if amount is not None and amount < 0:
            return None
        return amount

    @pydantic.field_validator("description", mode="before")
    def default_description(cls, v):
        if not isinstance(v, str) or not v.strip():
            return "Expense"
        return v.strip()

    @pydantic.field_validator("participants", mode="before")
    def names_only(cls, v):
        if not isinstance(v, list):
            return []
        return [name.strip() for name in v if isinstance(name, str) and name.strip()]

    @pydantic.field_validator("payer", mode="before")
    def payer_or_none(cls, v):
        if not isinstance(v, str) or not v.strip():
            return None
        return v.strip()

    @property
    def amount_cents(self) -> Optional[int]:
        return to_cents(self.amount) if self.amount is not None else None

    @property
    def needs_confirmation(self) -> bool:
        return self.confidence < OCR_CONFIDENCE_THRESHOLD or self.amount is None

    def to_response(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data["amount_cents"] = self.amount_cents
        data["needs_confirmation"] = self.needs_confirmation
        return data


class OCRResult(BaseModel):
    """Receipt fields read by the vision model, in major currency units."""

    merchant: Optional[str] = None
    date: Optional[str] = None
    subtotal: Optional[float] = None
    service_fee: Optional[float] = None
    tax: Optional[float] = None
    tip: Optional[float] = None
    total: Optional[float] = None
    confidence: float = 0.5
    suggested_participants: List[str] = Field(default_factory=list)

    @pydantic.field_validator(
        "subtotal", "service_fee", "tax", "tip", "total", mode="before"
    )
    def numbers_only(cls, v):
        amount = _number_or_none(v)
        if amount is not None and amount < 0:
            return None
        return amount

    @pydantic.field_validator("merchant", "date", mode="before")
    def blank_to_none(cls, v):
        if not isinstance(v, str) or not v.strip() or v.strip().lower() == "null":
            return None
        return v.strip()

    @pydantic.field_validator("confidence", mode="before")
    def clamp_confidence(cls, v):
        confidence = _number_or_none(v)
        if confidence is None:
            return 0.5
        return min(max(confidence, 0.0), 1.0)

    @property
    def total_cents(self) -> int:
        return to_cents(self.total) if self.total is not None else 0

    @property
    def needs_confirmation(self) -> bool:
        return self.confidence < OCR_CONFIDENCE_THRESHOLD

    @property
    def is_suspicious(self) -> bool:
        return self.total is not None and self.total > SUSPICIOUS_AMOUNT_THRESHOLD

    @property
    def is_extreme(self) -> bool:
        return self.total is not None and self.total > EXTREME_VALUE_THRESHOLD

    @property
    def needs_review(self) -> bool:
        return self.needs_confirmation or self.is_suspicious

    def to_response(self) -> Dict[str, Any]:
        data = self.model_dump(mode="json")
        data.update(
            {
                "total_cents": self.total_cents,
                "needs_confirmation": self.needs_confirmation,
                "is_suspicious": self.is_suspicious,
                "is_extreme": self.is_extreme,
            }
        )
        return data


class OverlappingSplit(BaseModel):
    """Outcome of parsing an overlapping split description."""

    is_overlapping: bool = False
    split_groups: List[SplitGroup] = Field(default_factory=list)


class ExpenseParseRequest(BaseModel):
    """Body of ``POST /expenses/parse``."""

    text: str = Field(..., min_length=1)
    total_cents: Optional[int] = Field(None, gt=0)


class OverlappingSplitRequest(BaseModel):
    """Body of ``POST /expenses/overlapping``."""

    text: str = Field(..., min_length=1)
    total_cents: int = Field(..., gt=0)
