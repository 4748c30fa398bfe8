"""
Monthly take-home pay calculator.

Social insurance at the 2024-2025 employee rates, income tax looked up in the
simplified withholding table, local income tax at 10% of income tax. Every
deduction is floored to 10 won.

Usage:
    breakdown = calculate(SalaryInput(amount=70_000_000, family=2, kids=1))
    breakdown.net_pay
"""

import logging
import math
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Dict, Optional

from src.common.error_handling import ValidationError

logger = logging.getLogger(__name__)

PENSION_RATE = 0.045
HEALTH_RATE = 0.03545
LONG_TERM_CARE_RATE = 0.1295  # of the health premium
EMPLOYMENT_RATE = 0.009
LOCAL_TAX_RATE = 0.1

PENSION_FLOOR = 380_000
PENSION_CEILING = 5_900_000

# taxable base floored to 10,000 won -> family size (incl. self) -> kids under 20 -> income tax
WithholdingTable = Dict[int, Dict[int, Dict[int, int]]]

WITHHOLDING_TABLE: WithholdingTable = {
    5_630_000: {
        1: {0: 418_960, 1: 401_470, 2: 383_980},
        2: {0: 398_230, 1: 380_700, 2: 363_210},
        3: {0: 377_500, 1: 359_970, 2: 342_480},
    },
}


class SalaryBasis(str, Enum):
    ANNUAL = "year"
    MONTHLY = "month"


def floor10(amount: float) -> int:
    return int(math.floor(amount / 10) * 10)


def floor10000(amount: float) -> int:
    return int(math.floor(amount / 10_000) * 10_000)


@dataclass
class SalaryInput:
    amount: float
    basis: SalaryBasis = SalaryBasis.ANNUAL
    severance_included: bool = False
    family: int = 1
    kids: int = 0
    non_taxable: float = 200_000

    @classmethod
    def from_dict(cls, data: Dict) -> "SalaryInput":
        try:
            return cls(
                amount=float(data.get("amount") or 0),
                basis=SalaryBasis(data.get("basis") or SalaryBasis.ANNUAL.value),
                severance_included=bool(data.get("severance_included", False)),
                family=int(data.get("family") or 1),
                kids=int(data.get("kids") or 0),
                non_taxable=float(data.get("non_taxable", 200_000) or 0),
            )
        except (TypeError, ValueError):
            raise ValidationError("급여 입력값이 올바르지 않습니다.") from None


@dataclass
class SalaryBreakdown:
    monthly_gross: float
    taxable_base: float
    pension: int
    health: int
    long_term_care: int
    employment: int
    income_tax: int
    local_tax: int

    @property
    def total_deductions(self) -> int:
        return (
            self.pension + self.health + self.long_term_care
            + self.employment + self.income_tax + self.local_tax
        )

    @property
    def net_pay(self) -> float:
        return self.monthly_gross - self.total_deductions

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["total_deductions"] = self.total_deductions
        data["net_pay"] = self.net_pay
        return data


def monthly_gross(salary: SalaryInput) -> float:
    if salary.basis == SalaryBasis.MONTHLY:
        return salary.amount
    # Severance folded into the annual figure: one thirteenth of it is not salary
    divisor = 13 if salary.severance_included else 12
    return salary.amount / divisor


def lookup_income_tax(
    taxable_base: float,
    family: int,
    kids: int,
    table: Optional[WithholdingTable] = None,
) -> int:
    """
    Withholding table lookup. A missing family row falls back to the largest
    family listed; a missing kids column to the nearest one. Bases not in
    the table withhold nothing.
    """
    table = WITHHOLDING_TABLE if table is None else table
    families = table.get(floor10000(taxable_base))
    if not families:
        logger.debug(f"No withholding row for base {floor10000(taxable_base)}")
        return 0
    by_kids = families.get(family) or families[max(families)]
    if kids in by_kids:
        return by_kids[kids]
    nearest = min(by_kids, key=lambda k: (abs(k - kids), k))
    return by_kids[nearest]


def calculate(salary: SalaryInput, table: Optional[WithholdingTable] = None) -> SalaryBreakdown:
    """
    Raises:
        ValidationError: Negative pay, family below 1 or negative kids
    """
    if salary.amount < 0 or salary.non_taxable < 0:
        raise ValidationError("급여는 0 이상이어야 합니다.")
    if salary.family < 1 or salary.kids < 0:
        raise ValidationError("부양가족 수는 1명 이상이어야 합니다.")

    gross = monthly_gross(salary)
    taxable = max(0.0, gross - salary.non_taxable)

    pension = floor10(min(max(taxable, PENSION_FLOOR), PENSION_CEILING) * PENSION_RATE)
    health = floor10(taxable * HEALTH_RATE)
    income_tax = lookup_income_tax(taxable, salary.family, salary.kids, table)

    return SalaryBreakdown(
        monthly_gross=gross,
        taxable_base=taxable,
        pension=pension,
        health=health,
        long_term_care=floor10(health * LONG_TERM_CARE_RATE),
        employment=floor10(taxable * EMPLOYMENT_RATE),
        income_tax=income_tax,
        local_tax=floor10(income_tax * LOCAL_TAX_RATE),
    )
