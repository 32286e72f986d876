"""
SplitCalculator - equal per-payer amount from a session total.

The divisor is always the number of active non-host participants: the
host is the payee and does not owe anything.

Rounding is half-up to a whole currency unit, done with integers so the
result never depends on float representation. The remainder is not
redistributed; ``rounding_difference`` reports how far the collected sum
lands from the total.
"""

from dataclasses import dataclass


@dataclass(frozen=True)
class SplitResult:
    total: int
    payer_count: int
    per_person: int

    @property
    def collected(self) -> int:
        return self.per_person * self.payer_count

    @property
    def rounding_difference(self) -> int:
        """Positive means a surplus over the total, negative a shortfall."""
        return self.collected - self.total


class SplitCalculator:

    @staticmethod
    def per_person_amount(total: int, payer_count: int) -> int:
        """round(total / payer_count), halves rounded up."""
        if payer_count <= 0:
            # Callers reject the request with NoParticipants before getting here
            raise ValueError("payer_count must be positive")
        if total < 0:
            raise ValueError("total must be non-negative")
        return (2 * total + payer_count) // (2 * payer_count)

    @classmethod
    def split(cls, total: int, payer_count: int) -> SplitResult:
        return SplitResult(
            total=total,
            payer_count=payer_count,
            per_person=cls.per_person_amount(total, payer_count),
        )

    @classmethod
    def preview(cls, total: int, payer_count: int) -> int:
        """Per-person amount for read-only views; 0 when nobody owes yet."""
        if payer_count <= 0:
            return 0
        return cls.per_person_amount(total, payer_count)
