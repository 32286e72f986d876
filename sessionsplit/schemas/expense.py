from typing import List, Optional

from pydantic import BaseModel, Field

from sessionsplit.models.session import ExpenseItem
from sessionsplit.schemas.money import Money, MoneyInput


class ExpenseItemInput(BaseModel):
    description: str = Field(..., min_length=1, max_length=255)
    amount: MoneyInput = Field(..., ge=0)  # Whole units, up to the currency precision
    quantity: int = Field(1, ge=1)


class AddExpensesRequest(BaseModel):
    items: List[ExpenseItemInput] = Field(..., min_length=1)


class ExpenseUpdate(BaseModel):
    """Partial update of one line item."""
    description: Optional[str] = Field(None, min_length=1, max_length=255)
    amount: Optional[MoneyInput] = Field(None, ge=0)
    quantity: Optional[int] = Field(None, ge=1)


class ExpenseItemResponse(BaseModel):
    id: str
    description: str
    amount: Money
    quantity: int
    subtotal: Money

    @classmethod
    def from_item(cls, item: ExpenseItem) -> "ExpenseItemResponse":
        return cls(
            id=str(item.item_id),
            description=item.description,
            amount=item.amount,
            quantity=item.quantity,
            subtotal=item.subtotal(),
        )


class AddExpensesResponse(BaseModel):
    items: List[ExpenseItemResponse]
    total_amount: Money


class ExpenseSummaryResponse(BaseModel):
    items: List[ExpenseItemResponse]
    total_amount: Money
    player_count: int
    per_person_amount: Money
