"""
Cost Estimation
Insurance-adjusted procedure costs for curated directory facilities

The adjustment is a static display simulation: a fixed multiplier per
insurance category. It is NOT a benefits calculation and does not reflect
any real plan, network or deductible. Every comparison response carries
COST_DISCLAIMER so consumers can show it.
"""

import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from data_sources.error_handling import ValidationError
from data_sources.models import ProcedureCost
from logging_config import get_logger

logger = get_logger(__name__)

COST_DISCLAIMER = (
    "Cost estimates are approximate and simulated; insurance adjustments are fixed "
    "illustrative discounts, not real coverage. Contact the healthcare provider for exact pricing."
)

# insurance category -> (multiplier, display label)
INSURANCE_ADJUSTMENTS: Dict[str, tuple] = {
    "none": (1.0, None),
    "private": (0.60, "40% Insurance Discount"),
    "medicare": (0.45, "55% Medicare Rate"),
    "medicaid": (0.40, "60% Medicaid Rate"),
}

# Procedure catalogue for the comparison selector (indicative ranges, INR)
COMMON_PROCEDURES: List[Dict[str, Any]] = [
    {"name": "General Health Checkup", "minCost": 500, "maxCost": 2000,
     "description": "Basic health examination with routine blood tests"},
    {"name": "Complete Blood Count", "minCost": 300, "maxCost": 800,
     "description": "Blood test to evaluate overall health"},
    {"name": "X-Ray", "minCost": 400, "maxCost": 1500,
     "description": "Single-view diagnostic radiograph"},
    {"name": "ECG", "minCost": 250, "maxCost": 1000,
     "description": "Electrocardiogram to check heart rhythm"},
    {"name": "Ultrasound", "minCost": 800, "maxCost": 3000,
     "description": "Abdominal or pelvic ultrasound scan"},
    {"name": "Dental Cleaning", "minCost": 500, "maxCost": 2500,
     "description": "Scaling and polishing"},
    {"name": "MRI Scan", "minCost": 4000, "maxCost": 15000,
     "description": "Magnetic resonance imaging of one region"},
]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def common_procedures() -> List[Dict[str, Any]]:
    """Procedure catalogue with indicative cost ranges, for a selector."""
    return [dict(p) for p in COMMON_PROCEDURES]


@dataclass(frozen=True)
class CostEstimate:
    average_cost: int
    min_cost: int
    max_cost: int
    multiplier: float
    insurance_type: str
    discount_label: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "averageCost": self.average_cost,
            "minCost": self.min_cost,
            "maxCost": self.max_cost,
            "multiplier": self.multiplier,
            "insuranceType": self.insurance_type,
            "discountLabel": self.discount_label,
        }


def normalize_insurance_type(insurance_type: Optional[str]) -> str:
    """Unknown or missing categories fall back to 'none' (no adjustment)."""
    key = (insurance_type or "none").strip().lower()
    if key not in INSURANCE_ADJUSTMENTS:
        logger.debug(f"Unknown insurance type '{insurance_type}', applying no adjustment")
        return "none"
    return key


def estimate(procedure: ProcedureCost, insurance_type: Optional[str]) -> CostEstimate:
    """
    Apply the insurance multiplier to a procedure's average, min and max cost.

    Each value is rounded independently to the nearest whole currency unit.
    """
    key = normalize_insurance_type(insurance_type)
    multiplier, label = INSURANCE_ADJUSTMENTS[key]
    return CostEstimate(
        average_cost=_round_half_up(procedure.average_cost * multiplier),
        min_cost=_round_half_up(procedure.min_cost * multiplier),
        max_cost=_round_half_up(procedure.max_cost * multiplier),
        multiplier=multiplier,
        insurance_type=key,
        discount_label=label,
    )


class CostComparison:
    """Rank directory facilities near a ZIP code by adjusted procedure cost."""

    def __init__(self, search):
        # a FacilitySearch; geocoding and radius validation are shared with it
        self.search = search

    def compare_costs(self, procedure_name: str, zip_code: str,
                      insurance_type: Optional[str] = "none",
                      radius_km: float = 25.0) -> Dict[str, Any]:
        if not procedure_name or not procedure_name.strip():
            raise ValidationError("procedureName is required")
        if not zip_code or not str(zip_code).strip():
            raise ValidationError("zipCode is required")

        insurance_key = normalize_insurance_type(insurance_type)
        # unlimited: the procedure filter runs after the distance cut
        result = self.search.search_directory(str(zip_code), radius_km, limit=None)

        providers = []
        for facility, distance_km in result.matches:
            procedure = facility.find_procedure(procedure_name)
            if procedure is None:
                continue
            adjusted = estimate(procedure, insurance_key)
            providers.append({
                "facilityId": facility.id,
                "facilityName": facility.name,
                "facilityType": facility.facility_type.value,
                "averageCost": adjusted.average_cost,
                "minCost": adjusted.min_cost,
                "maxCost": adjusted.max_cost,
                "discountLabel": adjusted.discount_label,
                "distanceKm": round(distance_km, 3),
                "paymentOptions": facility.payment_options.to_dict(),
            })

        providers.sort(key=lambda p: (p["averageCost"], p["distanceKm"]))
        logger.info(f"Cost comparison for '{procedure_name}' found {len(providers)} providers",
                    extra={"location": zip_code, "provider_count": len(providers)})
        return {
            "procedureName": procedure_name.strip(),
            "location": result.origin_display_name,
            "insuranceType": insurance_key,
            "radius": result.radius_km,
            "disclaimer": COST_DISCLAIMER,
            "providers": providers,
        }
