# FILE: services/intent_parser.py
"""
Ordered-template grammar for spoken M-Pesa instructions.

Supported patterns (case-insensitive, full transcript):
  SEND_MONEY    : "send 500 [shillings|bob|kes] to 0712345678 | David"
  POCHI         : "pochi 200 to 0712345678 | David"
  PAYBILL       : "pay bill|paybill 247247 account 1234 [amount] 500"
  TILL          : "pay till|buy goods 522533 [amount] 500"
  WITHDRAW      : "withdraw 1000 agent 123456 store 001"
  NAMED_PAYMENT : "pay|buy at|buy from <saved contact> [amount] 500"

PRECEDENCE: rules are tried in INTENT_RULES order and the first full match
wins. NAMED_PAYMENT must stay last, otherwise "pay till 522533 500" and
"pay bill ..." would be read as payments to contacts named "till 522533"
and "bill ...".
"""

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

from core.intent import (
    NamedPaymentIntent,
    ParsedIntent,
    PaybillIntent,
    PochiIntent,
    SendMoneyIntent,
    TillIntent,
    WithdrawIntent,
)

logger = logging.getLogger("pesamirror.intent_parser")

AMOUNT = r"(?P<amount>\d[\d,]*(?:\.\d+)?)"
TARGET = r"(?P<target>[\w\s+()\-]+?)"
CURRENCY_WORDS = r"(?:(?:shillings?|bob|kes)\s+)?"
OPTIONAL_AMOUNT_WORD = r"(?:amount\s+)?"

_AMOUNT_SHAPE_RE = re.compile(r"^\d+(?:\.\d+)?$")


def normalize_amount(raw: str) -> Optional[str]:
    """Strip commas from spoken numbers like "1,000" -> "1000"."""
    amount = raw.replace(",", "")
    if not _AMOUNT_SHAPE_RE.match(amount):
        return None
    return amount


# -----------------------------
# Rule table
# -----------------------------
@dataclass(frozen=True)
class IntentRule:
    name: str
    pattern: "re.Pattern[str]"
    build: Callable[[dict, str], ParsedIntent]

    def apply(self, text: str) -> Optional[ParsedIntent]:
        m = self.pattern.match(text)
        if not m:
            return None
        amount = normalize_amount(m.group("amount"))
        if amount is None:
            return None
        return self.build(m.groupdict(), amount)


def _rule(name: str, pattern: str, build: Callable[[dict, str], ParsedIntent]) -> IntentRule:
    return IntentRule(name=name, pattern=re.compile(pattern, re.IGNORECASE), build=build)


INTENT_RULES: Tuple[IntentRule, ...] = (
    _rule(
        "send_money",
        rf"^send\s+{AMOUNT}\s+{CURRENCY_WORDS}to\s+{TARGET}$",
        lambda g, amount: SendMoneyIntent(amount=amount, phone=g["target"].strip()),
    ),
    _rule(
        "pochi",
        rf"^pochi\s+{AMOUNT}\s+to\s+{TARGET}$",
        lambda g, amount: PochiIntent(amount=amount, phone=g["target"].strip()),
    ),
    _rule(
        "paybill",
        rf"^pay\s*bill\s+(?P<business>\d+)\s+account\s+(?P<account>\d+)\s+{OPTIONAL_AMOUNT_WORD}{AMOUNT}$",
        lambda g, amount: PaybillIntent(amount=amount, business=g["business"], account=g["account"]),
    ),
    _rule(
        "till",
        rf"^(?:pay\s+till|buy\s+goods)\s+(?P<till>\d+)\s+{OPTIONAL_AMOUNT_WORD}{AMOUNT}$",
        lambda g, amount: TillIntent(amount=amount, till=g["till"]),
    ),
    _rule(
        "withdraw",
        rf"^withdraw\s+{AMOUNT}\s+agent\s+(?P<agent>\d+)\s+store\s+(?P<store>\d+)$",
        lambda g, amount: WithdrawIntent(amount=amount, agent=g["agent"], store=g["store"]),
    ),
    # Must stay last (see PRECEDENCE above)
    _rule(
        "named_payment",
        rf"^(?:pay|buy\s+(?:at|from))\s+(?P<name>[a-z][a-z0-9\s]*?)\s+{OPTIONAL_AMOUNT_WORD}{AMOUNT}$",
        lambda g, amount: NamedPaymentIntent(amount=amount, contactName=g["name"].strip()),
    ),
)


def parse_intent(transcript: str) -> Optional[ParsedIntent]:
    """
    Parse a free-form English transcript into a typed intent.
    Returns None for an unrecognized transcript; messaging is up to the caller.
    """
    text = transcript.strip()
    if not text:
        return None

    for rule in INTENT_RULES:
        intent = rule.apply(text)
        if intent is not None:
            logger.debug(f"[PARSED] rule={rule.name}, type={intent.type.value}")
            return intent

    logger.debug(f"[UNRECOGNIZED] text_length={len(text)}")
    return None
