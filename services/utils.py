import re
from enum import Enum
from typing import Any

_PHONE_SHAPE_RE = re.compile(r"^[+\d\s\-()]{7,15}$")
_PHONE_NOISE_RE = re.compile(r"[\s\-()]")

KENYA_COUNTRY_PREFIX = "+254"


def is_phone_number(text: str) -> bool:
    """7-15 characters drawn from digits, '+', spaces, dashes and parens."""
    return bool(_PHONE_SHAPE_RE.match(text))


def normalize_phone(phone: str) -> str:
    """
    Strip formatting and rewrite the +254 country code to a local 0 prefix.
    "+254 712-345-678" -> "0712345678"
    """
    p = _PHONE_NOISE_RE.sub("", phone)
    if p.startswith(KENYA_COUNTRY_PREFIX):
        p = "0" + p[len(KENYA_COUNTRY_PREFIX):]
    return p


def strip_whitespace(value: str) -> str:
    return re.sub(r"\s", "", value)


def deep_serialize(obj: Any) -> Any:
    """
    Recursively convert objects to JSON-safe primitives.
    """
    if obj is None:
        return None
    if isinstance(obj, Enum):
        return obj.value
    if hasattr(obj, "model_dump"):
        return deep_serialize(obj.model_dump(exclude_none=True))
    if isinstance(obj, dict):
        return {k: deep_serialize(v) for k, v in obj.items()}
    if isinstance(obj, (list, tuple, set)):
        return [deep_serialize(v) for v in obj]
    if isinstance(obj, (str, int, float, bool)):
        return obj
    return str(obj)
