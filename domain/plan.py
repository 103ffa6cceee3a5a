"""
Domain: Insurance plans offered for a quote.

Plans are regenerated from the quote's pricing inputs; the quote keeps a
denormalized copy of the chosen plan's provider and name, which can go stale
if the plan list is regenerated afterwards.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import List, Optional, Tuple

from .quote import InsuranceType, RiskFactors

# Loading applied to the base premium per risk factor present.
_RISK_LOADING = Decimal("0.15")


@dataclass(frozen=True, slots=True)
class InsurancePlan:
    id: str
    provider: str  # GIG, SNIC, TISUR
    name: str
    coverage: str
    base_premium: Decimal
    features: Tuple[str, ...] = ()
    excess: Optional[Decimal] = None
    agency_repair: bool = False
    roadside_assistance: bool = False


def _round(value: Decimal) -> Decimal:
    return value.quantize(Decimal("1"), rounding=ROUND_HALF_UP)


def generate_plans(
    vehicle_value: Decimal,
    risk_factors: RiskFactors,
    insurance_type: InsuranceType = InsuranceType.MOTOR,
) -> List[InsurancePlan]:
    """
    Build the plan list for a motor quote.

    Base premium is 3% of the vehicle value, loaded 15% for each risk factor.
    Non-motor products are priced elsewhere and yield an empty list.
    """

    if insurance_type != InsuranceType.MOTOR:
        return []
    if vehicle_value < 0:
        raise ValueError("vehicle_value must be >= 0")

    base = Decimal(vehicle_value) * Decimal("0.03")
    loadings = int(risk_factors.age_under_24) + int(risk_factors.license_under_1_year)
    base = _round(base * (1 + _RISK_LOADING * loadings))

    return [
        InsurancePlan(
            id="plan_gig_1",
            provider="GIG",
            name="Comprehensive",
            coverage="Full",
            base_premium=base,
            features=("Roadside", "Agency Repair (3 Years)", "Zero Dep. (Option)"),
            excess=Decimal("0"),
            agency_repair=True,
            roadside_assistance=True,
        ),
        InsurancePlan(
            id="plan_snic_1",
            provider="SNIC",
            name="Smart Drive",
            coverage="Comp",
            base_premium=_round(base * Decimal("0.9")),
            features=("Roadside", "Car Replacement"),
            excess=Decimal("50"),
            roadside_assistance=True,
        ),
        InsurancePlan(
            id="plan_tisur_1",
            provider="TISUR",
            name="Economy",
            coverage="Third Party",
            base_premium=_round(base * Decimal("0.4")),
            features=("Third Party Liability",),
            excess=Decimal("100"),
        ),
    ]


def find_plan(plans: List[InsurancePlan], plan_id: str) -> Optional[InsurancePlan]:
    return next((plan for plan in plans if plan.id == plan_id), None)
