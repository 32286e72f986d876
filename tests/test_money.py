import pytest
from pydantic import ValidationError

from sessionsplit.core.config import settings
from sessionsplit.schemas.expense import ExpenseItemInput, ExpenseItemResponse, ExpenseUpdate
from sessionsplit.schemas.obligation import PaymentSubmit


@pytest.fixture
def cents(monkeypatch):
    monkeypatch.setattr(settings, "CURRENCY_DECIMALS", 2)


def test_whole_unit_currency_takes_integral_amounts():
    assert ExpenseItemInput(description="Court", amount=120000).amount == 120000
    assert ExpenseItemInput(description="Court", amount=12.0).amount == 12

    with pytest.raises(ValidationError):
        ExpenseItemInput(description="Court", amount=12.5)


def test_decimal_amount_stored_in_cents(cents):
    assert ExpenseItemInput(description="Snacks", amount=12.50).amount == 1250
    assert ExpenseItemInput(description="Snacks", amount="12.50").amount == 1250
    assert ExpenseUpdate(amount="0.99").amount == 99
    assert PaymentSubmit(method="TRANSFER", amount=7).amount == 700


def test_amount_finer_than_currency_refused(cents):
    with pytest.raises(ValidationError):
        ExpenseItemInput(description="Snacks", amount="12.505")


@pytest.mark.parametrize("amount", [-1, "abc", "NaN", True])
def test_invalid_amounts_refused(cents, amount):
    with pytest.raises(ValidationError):
        ExpenseItemInput(description="Snacks", amount=amount)


def test_responses_render_whole_units(cents):
    response = ExpenseItemResponse(id="x", description="Snacks", amount=1250, quantity=2, subtotal=2500)

    assert response.amount == 1250
    assert response.model_dump(mode="json")["amount"] == 12.5
    assert response.model_dump(mode="json")["subtotal"] == 25.0
