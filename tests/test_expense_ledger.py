import pytest

from sessionsplit.models.session import ExpenseItem
from sessionsplit.services.expense_ledger import ExpenseLedger
from sessionsplit.utils.errors import ValidationFailure
from sessionsplit.utils.expense_validation import validate_expense_items


def test_total_multiplies_quantity():
    ledger = ExpenseLedger([
        ExpenseItem(description="Court", amount=100000, quantity=1),
        ExpenseItem(description="Shuttlecocks", amount=17500, quantity=2),
    ])

    assert ledger.total() == 135000


def test_inactive_items_are_ignored():
    ledger = ExpenseLedger([
        ExpenseItem(description="Court", amount=100000),
        ExpenseItem(description="Drinks", amount=30000, is_active=False),
    ])

    assert [i.description for i in ledger.active_items()] == ["Court"]
    assert ledger.total() == 100000


def test_stored_total_is_none_without_items():
    assert ExpenseLedger([]).stored_total() is None
    assert ExpenseLedger([ExpenseItem(description="Free", amount=0)]).stored_total() == 0


def test_negative_amount_rejected():
    with pytest.raises(ValidationFailure) as exc_info:
        validate_expense_items([ExpenseItem(description="Refund", amount=-5)])

    assert exc_info.value.extra["field"] == "amount"


def test_zero_quantity_rejected():
    with pytest.raises(ValidationFailure):
        validate_expense_items([ExpenseItem(description="Court", amount=5, quantity=0)])


def test_blank_description_rejected():
    with pytest.raises(ValidationFailure):
        validate_expense_items([ExpenseItem(description="   ", amount=5)])
