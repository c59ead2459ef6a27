import csv
import re
from decimal import Decimal, InvalidOperation
from io import StringIO
from typing import Sequence, Union

from models import Expense

MAX_AMOUNT_CENTS = 10**15


def sanitize_csv_value(value: str) -> str:
    """
    Sanitize CSV values to prevent formula injection by prefixing dangerous patterns with tab.
    """
    if not value or value.strip() == "":
        return ""

    value = value.strip()

    formula_triggers = ("=", "+", "-", "@", "\t", "\r")

    if value.startswith(formula_triggers):
        return "\t" + value

    dangerous_patterns = [
        r"^cmd\s*",
        r"^powershell\s*",
        r"^bash\s*",
        r"^sh\s*",
        r"^http[s]?://",
    ]

    for pattern in dangerous_patterns:
        if re.match(pattern, value, re.IGNORECASE):
            return "\t" + value

    return value


def parse_amount(value: Union[str, int, float, Decimal]) -> int:
    """Parse a user supplied amount (``12.5``, ``"12,50"``, ``"$12"``) into cents."""
    if isinstance(value, bool):
        raise ValueError("Invalid amount")
    if isinstance(value, float):
        value = repr(value)
    clean = str(value).strip().replace("€", "").replace("$", "").replace(" ", "")
    clean = clean.replace(",", ".")
    if clean.count(".") > 1:
        parts = clean.split(".")
        clean = "".join(parts[:-1]) + "." + parts[-1]
    try:
        amount = Decimal(clean)
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if not amount.is_finite():
        raise ValueError("Invalid amount")
    try:
        cents = int((amount * 100).quantize(Decimal("1")))
    except InvalidOperation as exc:
        raise ValueError("Invalid amount") from exc
    if cents < 0:
        raise ValueError("Amount must be non-negative")
    if cents > MAX_AMOUNT_CENTS:
        raise ValueError("Invalid amount")
    return cents


def format_amount(cents: int) -> str:
    """``100000`` -> ``"1000"``, ``1250`` -> ``"12.50"``."""
    if cents % 100 == 0:
        return str(cents // 100)
    return f"{cents / 100:.2f}"


def export_expenses(expenses: Sequence[Expense]) -> str:
    output = StringIO()
    writer = csv.writer(output)
    writer.writerow(["Date", "Amount", "Category", "Notes"])
    for expense in expenses:
        writer.writerow(
            [
                expense.occurred_on.date().isoformat(),
                f"{expense.amount_cents / 100:.2f}",
                sanitize_csv_value(expense.category),
                sanitize_csv_value(expense.notes or ""),
            ]
        )
    return output.getvalue()
