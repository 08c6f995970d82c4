PAYMENT_LEXICON: dict[int, str] = {
    0: "None",
    1: "Credit Card",
    2: "Check",
    3: "Cash",
    4: "Bank Transfer (Internal)",
    6: "Debit Card",
    7: "Standing Order",
    8: "Electronic Payment",
    9: "Deposit",
    10: "Fee",
    11: "Direct Debit",
}

INTERNAL_TRANSFER = 4


def payment_mode_name(code: int | None) -> str:
    if code is None:
        return ""
    return PAYMENT_LEXICON.get(code, "")


def payment_mode_code(name: str | None) -> int | None:
    if not name:
        return None
    wanted = name.strip().lower()
    for code, label in PAYMENT_LEXICON.items():
        if label.lower() == wanted:
            return code
    return None


def parse_payment_code(raw: str | None) -> int:
    """Numeric payment mode from an import line; anything unparsable is 0."""
    try:
        return int((raw or "").strip())
    except ValueError:
        return 0
