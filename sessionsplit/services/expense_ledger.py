from typing import Iterable, List, Optional

from sessionsplit.models.session import ExpenseItem


class ExpenseLedger:
    """Line items of one session and the total they add up to."""

    def __init__(self, items: Iterable[ExpenseItem]):
        self.items: List[ExpenseItem] = list(items)

    def active_items(self) -> List[ExpenseItem]:
        return [item for item in self.items if item.is_active]

    def total(self) -> int:
        """Sum of amount * quantity over active items."""
        return sum(item.subtotal() for item in self.active_items())

    def stored_total(self) -> Optional[int]:
        """Total as persisted on the session: None until an expense exists."""
        if not self.active_items():
            return None
        return self.total()
