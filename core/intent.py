# core/intent.py
from enum import Enum
from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field


class IntentType(str, Enum):
    """
    The closed set of payment instructions a transcript can express.
    """

    SEND_MONEY = "SEND_MONEY"
    POCHI = "POCHI"
    PAYBILL = "PAYBILL"
    TILL = "TILL"
    WITHDRAW = "WITHDRAW"

    # Transient: rewritten into one of the above before confirmation
    NAMED_PAYMENT = "NAMED_PAYMENT"

    # -----------------------------
    # Semantic helpers (SAFE)
    # -----------------------------
    def targets_phone(self) -> bool:
        return self in {IntentType.SEND_MONEY, IntentType.POCHI}

    def is_concrete(self) -> bool:
        return self is not IntentType.NAMED_PAYMENT


class _IntentBase(BaseModel):
    """
    A passive container for one payment instruction.
    This does NOT resolve names.
    This does NOT execute anything.
    """

    model_config = ConfigDict(frozen=True)

    # Decimal string, thousands separators already stripped
    amount: str


class SendMoneyIntent(_IntentBase):
    type: Literal[IntentType.SEND_MONEY] = IntentType.SEND_MONEY
    phone: str


class PochiIntent(_IntentBase):
    type: Literal[IntentType.POCHI] = IntentType.POCHI
    phone: str


class PaybillIntent(_IntentBase):
    type: Literal[IntentType.PAYBILL] = IntentType.PAYBILL
    business: str
    account: str


class TillIntent(_IntentBase):
    type: Literal[IntentType.TILL] = IntentType.TILL
    till: str


class WithdrawIntent(_IntentBase):
    type: Literal[IntentType.WITHDRAW] = IntentType.WITHDRAW
    agent: str
    store: str


class NamedPaymentIntent(_IntentBase):
    type: Literal[IntentType.NAMED_PAYMENT] = IntentType.NAMED_PAYMENT
    contactName: str


# 🔒 Only these may reach the submission boundary
ConcreteIntent = Annotated[
    Union[SendMoneyIntent, PochiIntent, PaybillIntent, TillIntent, WithdrawIntent],
    Field(discriminator="type"),
]

ParsedIntent = Annotated[
    Union[
        SendMoneyIntent,
        PochiIntent,
        PaybillIntent,
        TillIntent,
        WithdrawIntent,
        NamedPaymentIntent,
    ],
    Field(discriminator="type"),
]
