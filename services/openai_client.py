"""
OpenAI adapters for receipt OCR and natural-language expense parsing.

Calls go straight to the chat completions REST endpoint with ``requests``.
Model output is validated through the result models in ``models.ai``; every
public function degrades to a low-confidence result instead of raising.
"""

import json
import re
from typing import Any, Dict, List, Optional

import requests
from pydantic import BaseModel, Field

from models.ai import OCRResult, OverlappingSplit, ParsedExpense
from models.expense import SplitGroup
from services.parameter_store import config
from utils.logging import setup_logger

logger = setup_logger(__name__)

CHAT_COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"
REQUEST_TIMEOUT_SECONDS = 30

# Confidence reported for a text parse when the model omits one
DEFAULT_PARSE_CONFIDENCE = 0.95

OCR_NO_CONTENT_CONFIDENCE = 0.2
OCR_UNPARSEABLE_CONFIDENCE = 0.3
OCR_TRANSPORT_ERROR_CONFIDENCE = 0.2

OCR_PROMPT = """You are a highly accurate receipt OCR system. Extract the following with precision.

The "total" field is the most important value. Read the final amount paid at the
bottom of the receipt digit by digit, taking care with look-alike digits
(2 and 7, 0 and 8, 1 and 7, 3 and 8, 5 and 6). "2,377.54" is 2377.54.

Extract:
1. Merchant or business name
2. Date of the transaction
3. Subtotal before fees, tax and tip
4. Service, delivery or convenience fees
5. Tax
6. Tip
7. Total amount paid

Return only valid JSON:
{
  "merchant": "business name or null",
  "date": "YYYY-MM-DD or null",
  "subtotal": number_or_null,
  "service_fee": number_or_null,
  "tax": number_or_null,
  "tip": number_or_null,
  "total": number_or_null,
  "confidence": 0.0-1.0
}

Set confidence honestly: 0.95 or more only when every digit of the total is
clearly visible, 0.7-0.94 when a digit may be ambiguous, below 0.7 when the
numbers are hard to read or the image is poor."""

PARSE_PROMPT = (
    "You extract expense information from chat messages. Return JSON with "
    'fields: "amount" (number, major currency units, or null), "description" '
    '(a short 1-2 word label such as "lunch", "uber" or "groceries"), '
    '"participants" (names mentioned as sharing the expense), "payer" (name '
    'of whoever paid, or null) and "confidence" (0.0-1.0).'
)

OVERLAPPING_PROMPT = """You parse an expense split into overlapping groups where a participant may appear in several groups.

Preserve the exact capitalization of participant names as typed.

Accept many ways of naming groups: "Half 1"/"Half 2", "half one"/"half two",
"first group"/"second group", "first half"/"second half", "Group A"/"Group B",
"h1"/"h2".

Return JSON:
{"groups": [{"name": "group identifier", "participants": ["Name1", "Name2"]}]}

Example:
Input: "Half 1: Boom Ken Jessi. Half 2: Boom Ann Gil"
Output: {"groups": [{"name": "Half 1", "participants": ["Boom", "Ken", "Jessi"]}, {"name": "Half 2", "participants": ["Boom", "Ann", "Gil"]}]}"""

_OVERLAPPING_PATTERNS = [
    re.compile(
        r"split\s+(?:this|the|into)?\s*(?:into|in)?\s+(two|2|three|3)\s+(?:halves?|groups?|ways?)",
        re.IGNORECASE,
    ),
    re.compile(r"(?:divided?|split)\s+in\s+half", re.IGNORECASE),
    re.compile(r"(?:half|group)\s*(?:1|2|one|two|first|second|a|b)", re.IGNORECASE),
    re.compile(r"\bh[12]\b", re.IGNORECASE),
]
_GROUP_WORD = re.compile(r"half|group|h\d", re.IGNORECASE)

_CODE_FENCE = re.compile(r"```json\n?|```\n?")


class OpenAIError(Exception):
    """Raised by ``OpenAIClient`` when a completion cannot be obtained."""


class _GroupPayload(BaseModel):
    name: str = Field(..., min_length=1)
    participants: List[str] = Field(..., min_length=1)


class _GroupsPayload(BaseModel):
    groups: List[_GroupPayload] = Field(default_factory=list)


class OpenAIClient:
    """Thin wrapper over the chat completions endpoint."""

    def __init__(
        self,
        api_key: str,
        text_model: str = "gpt-4o-mini",
        vision_model: str = "gpt-4o",
        timeout: int = REQUEST_TIMEOUT_SECONDS,
    ):
        self.api_key = api_key
        self.text_model = text_model
        self.vision_model = vision_model
        self.timeout = timeout

    @classmethod
    def from_config(cls) -> "OpenAIClient":
        """
        Build a client from the environment or Parameter Store.

        Raises:
            ValueError: If the API key is not configured
        """
        return cls(**config.load_openai_config())

    def complete(
        self,
        model: str,
        messages: List[Dict[str, Any]],
        json_mode: bool = False,
        **options: Any,
    ) -> Optional[str]:
        """
        Run one chat completion and return the first choice's content.

        Raises:
            OpenAIError: On transport failures or non-2xx responses
        """
        payload = {"model": model, "messages": messages, **options}
        if json_mode:
            payload["response_format"] = {"type": "json_object"}

        try:
            response = requests.post(
                CHAT_COMPLETIONS_URL,
                json=payload,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise OpenAIError(f"Request to OpenAI failed: {e}") from e

        if not response.ok:
            logger.error(
                "OpenAI request failed",
                extra={
                    "status_code": response.status_code,
                    "model": model,
                    "response": response.text[:500],
                },
            )
            raise OpenAIError(f"OpenAI returned status {response.status_code}")

        try:
            choices = response.json().get("choices") or []
        except ValueError as e:
            raise OpenAIError("OpenAI returned a non-JSON body") from e

        if not choices:
            return None
        return (choices[0].get("message") or {}).get("content")


def _client_or_default(client: Optional[OpenAIClient]) -> OpenAIClient:
    return client or OpenAIClient.from_config()


def strip_code_fences(content: str) -> str:
    return _CODE_FENCE.sub("", content).strip()


def parse_expense_text(
    text: str, client: Optional[OpenAIClient] = None
) -> ParsedExpense:
    """
    Extract amount, description and people from a message like "lunch $45 with @sarah".

    Any failure yields ``ParsedExpense(confidence=0.0)``, which always needs
    confirmation.
    """
    try:
        client = _client_or_default(client)
        content = client.complete(
            client.text_model,
            [
                {"role": "system", "content": PARSE_PROMPT},
                {
                    "role": "user",
                    "content": f'Extract the amount and expense description from: "{text}"',
                },
            ],
            json_mode=True,
            temperature=0.1,
        )
        if not content:
            raise OpenAIError("No content returned from OpenAI")

        data = json.loads(content)
        if not isinstance(data, dict):
            raise ValueError("Expected a JSON object")
        parsed = ParsedExpense.model_validate(
            {"confidence": DEFAULT_PARSE_CONFIDENCE, **data}
        )

    except (OpenAIError, ValueError) as e:
        # pydantic.ValidationError and json.JSONDecodeError are ValueErrors
        logger.warning(
            "Expense text parsing failed", extra={"error": str(e), "text": text}
        )
        return ParsedExpense(confidence=0.0)

    logger.info(
        "Parsed expense text",
        extra={"amount": parsed.amount, "confidence": parsed.confidence},
    )
    return parsed


def process_receipt_ocr(
    image_url: str, client: Optional[OpenAIClient] = None
) -> OCRResult:
    """
    Read merchant, date and amounts from a receipt image with the vision model.

    Returns a result with confidence 0.2 when the call fails or returns
    nothing, and 0.3 when the reply cannot be parsed.
    """
    try:
        client = _client_or_default(client)
        content = client.complete(
            client.vision_model,
            [
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": OCR_PROMPT},
                        {
                            "type": "image_url",
                            "image_url": {"url": image_url, "detail": "high"},
                        },
                    ],
                }
            ],
            max_tokens=300,
        )
    except (OpenAIError, ValueError) as e:
        logger.error("Receipt OCR request failed", extra={"error": str(e)})
        return OCRResult(confidence=OCR_TRANSPORT_ERROR_CONFIDENCE)

    if not content:
        logger.error("No content returned from OCR model")
        return OCRResult(confidence=OCR_NO_CONTENT_CONFIDENCE)

    try:
        data = json.loads(strip_code_fences(content))
        if not isinstance(data, dict):
            raise ValueError("Expected a JSON object")
        result = OCRResult.model_validate(data)
    except ValueError as e:
        logger.error(
            "OCR response could not be parsed",
            extra={"error": str(e), "raw_content": content[:500]},
        )
        return OCRResult(confidence=OCR_UNPARSEABLE_CONFIDENCE)

    if result.needs_confirmation:
        logger.warning("Low confidence OCR result", extra={"confidence": result.confidence})
    if result.is_suspicious:
        logger.warning("Suspicious receipt total", extra={"total": result.total})

    return result


def looks_overlapping(text: str) -> bool:
    """Cheap check for "half 1 / half 2" style phrasing before calling the model."""
    if any(pattern.search(text) for pattern in _OVERLAPPING_PATTERNS):
        return True
    return len(_GROUP_WORD.findall(text)) >= 2


def divide_among_groups(
    groups: List[_GroupPayload], total_cents: int
) -> List[SplitGroup]:
    """
    Split ``total_cents`` evenly across groups.

    The remainder goes entirely to the first group; each group's per-person
    share is its total floor-divided by its size.
    """
    per_group, remainder = divmod(total_cents, len(groups))
    split_groups = []
    for index, group in enumerate(groups):
        group_total = per_group + (remainder if index == 0 else 0)
        split_groups.append(
            SplitGroup(
                name=group.name,
                participants=group.participants,
                total_cents=group_total,
                per_person_cents=group_total // len(group.participants),
            )
        )
    return split_groups


def parse_overlapping_split(
    text: str, total_cents: int, client: Optional[OpenAIClient] = None
) -> OverlappingSplit:
    """
    Parse an overlapping split such as "Half 1: Boom Ken Jessi. Half 2: Boom Ann Gil".

    Text without group phrasing never reaches the model. Fewer than two
    groups or any failure is reported as not overlapping.
    """
    if not looks_overlapping(text):
        return OverlappingSplit(is_overlapping=False)

    logger.info("Detected overlapping split pattern")

    try:
        client = _client_or_default(client)
        content = client.complete(
            client.text_model,
            [
                {"role": "system", "content": OVERLAPPING_PROMPT},
                {"role": "user", "content": f'Parse this overlapping split: "{text}"'},
            ],
            json_mode=True,
            temperature=0.1,
        )
        if not content:
            raise OpenAIError("No content returned from OpenAI")

        payload = _GroupsPayload.model_validate_json(content)
    except (OpenAIError, ValueError) as e:
        logger.warning("Overlapping split parsing failed", extra={"error": str(e)})
        return OverlappingSplit(is_overlapping=False)

    if len(payload.groups) < 2:
        return OverlappingSplit(is_overlapping=False)

    return OverlappingSplit(
        is_overlapping=True,
        split_groups=divide_among_groups(payload.groups, total_cents),
    )


def overlapping_breakdown(split_groups: List[SplitGroup]) -> Dict[str, Dict[str, Any]]:
    """Per participant: the groups they belong to and the sum of their shares."""
    breakdown: Dict[str, Dict[str, Any]] = {}
    for group in split_groups:
        for participant in group.participants:
            entry = breakdown.setdefault(participant, {"groups": [], "total_cents": 0})
            entry["groups"].append(group.name)
            entry["total_cents"] += group.share_cents()
    return breakdown
