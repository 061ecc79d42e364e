from core.intent import ConcreteIntent, IntentType


def describe_intent(intent: ConcreteIntent) -> str:
    """
    Canonical one-sentence readback of a concrete intent, used for the spoken
    confirmation and any on-screen echo.
    """
    t = intent.type
    if t is IntentType.SEND_MONEY:
        return f"Send {intent.amount} shillings to {intent.phone}."
    if t is IntentType.POCHI:
        return f"Pochi {intent.amount} shillings to {intent.phone}."
    if t is IntentType.PAYBILL:
        return (
            f"Pay bill {intent.business}, account {intent.account}, "
            f"amount {intent.amount} shillings."
        )
    if t is IntentType.TILL:
        return f"Buy goods at till {intent.till}, amount {intent.amount} shillings."
    if t is IntentType.WITHDRAW:
        return (
            f"Withdraw {intent.amount} shillings from agent {intent.agent}, "
            f"store {intent.store}."
        )
    raise ValueError(f"Cannot describe unresolved intent of type {t.value}")
