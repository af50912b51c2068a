import json
import math
import re

from fomo_roaster.llm import LLMError
from fomo_roaster.models import StructuredResult

_OPENING_FENCE = re.compile(r"\A\s*```json[ \t]*\r?\n")
_CLOSING_FENCE = re.compile(r"\r?\n?```\s*\Z")

_STRING_FIELDS = ("roast", "skillsToLearn", "summary")


class MalformedModelOutput(LLMError):
    pass


def normalize(raw: str) -> str:
    """Strip a surrounding ```json fence, if both ends are present, and trim."""
    opening = _OPENING_FENCE.match(raw)
    if opening:
        inner = raw[opening.end():]
        closing = _CLOSING_FENCE.search(inner)
        if closing:
            raw = inner[:closing.start()]
    return raw.strip()


def clamp_score(value: object) -> int:
    # bool is an int subclass but never a valid score
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise MalformedModelOutput(f"totalFomoScore is not a number: {value!r}")
    if isinstance(value, float) and not math.isfinite(value):
        raise MalformedModelOutput(f"totalFomoScore is not finite: {value!r}")
    return max(0, min(100, round(value)))


def parse(raw: str) -> StructuredResult:
    text = normalize(raw)
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise MalformedModelOutput(f"Model returned invalid JSON: {exc}") from exc

    if not isinstance(data, dict):
        raise MalformedModelOutput("Model output is not a JSON object")

    missing = [f for f in ("totalFomoScore", *_STRING_FIELDS) if f not in data]
    if missing:
        raise MalformedModelOutput(f"Model output is missing fields: {', '.join(missing)}")

    for field in _STRING_FIELDS:
        if not isinstance(data[field], str):
            raise MalformedModelOutput(f"{field} is not a string")

    return StructuredResult(
        totalFomoScore=clamp_score(data["totalFomoScore"]),
        roast=data["roast"],
        skillsToLearn=data["skillsToLearn"],
        summary=data["summary"],
    )
