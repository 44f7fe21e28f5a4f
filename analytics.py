from datetime import date
from decimal import ROUND_HALF_UP, Decimal
from typing import Mapping, Sequence

from periods import Window

OTHER_CATEGORY = "Other"


def percent_change(current: float, previous: float, places: int = 2) -> float:
    """
    Relative change from ``previous`` to ``current`` in percent.

    A zero baseline saturates at 100 (or 0 when nothing changed) instead of
    dividing by zero.
    """
    if previous == 0:
        return 100.0 if current != 0 else 0.0
    change = (Decimal(str(current)) - Decimal(str(previous))) / abs(
        Decimal(str(previous))
    )
    quantum = Decimal(1).scaleb(-places)
    return float((change * 100).quantize(quantum, rounding=ROUND_HALF_UP))


def rollup_categories(
    ranked: Sequence[tuple[str, int]], top: int = 3
) -> list[dict[str, object]]:
    head = [{"name": name, "value": value} for name, value in ranked[:top]]
    tail = ranked[top:]
    if tail:
        head.append({"name": OTHER_CATEGORY, "value": sum(value for _, value in tail)})
    return head


def fill_missing_days(
    active_days: Sequence[Mapping[str, object]], window: Window
) -> list[dict[str, object]]:
    by_date: dict[date, Mapping[str, object]] = {
        row["date"]: row for row in active_days
    }
    filled: list[dict[str, object]] = []
    for day in window.days():
        row = by_date.get(day)
        if row is None:
            filled.append({"date": day, "income": 0, "expenses": 0})
        else:
            filled.append(
                {"date": day, "income": row["income"], "expenses": row["expenses"]}
            )
    return filled
