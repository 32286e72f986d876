"""Expense validation utilities."""
from typing import Iterable, Optional

from sessionsplit.models.session import ExpenseItem
from sessionsplit.utils.errors import ValidationFailure


def validate_amount(description: str, amount: Optional[int]) -> None:
    """Unit amounts are non-negative integers in the smallest currency unit."""
    if amount is None:
        return
    if amount < 0:
        raise ValidationFailure(
            f"Expense '{description}' has negative amount: {amount}",
            field="amount",
        )


def validate_quantity(description: str, quantity: Optional[int]) -> None:
    if quantity is None:
        return
    if quantity <= 0:
        raise ValidationFailure(
            f"Expense '{description}' has non-positive quantity: {quantity}",
            field="quantity",
        )


def validate_expense_items(items: Iterable[ExpenseItem]) -> None:
    """
    Validate expense line items.

    Rules:
    - description must not be blank
    - amount must be non-negative
    - quantity must be positive
    """
    for item in items:
        if not item.description or not item.description.strip():
            raise ValidationFailure("Expense description is required", field="description")
        validate_amount(item.description, item.amount)
        validate_quantity(item.description, item.quantity)
