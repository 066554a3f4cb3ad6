"""Estimated lead value used for lead source analysis."""

from typing import Any, Mapping, Union

from ..core.models import Lead

BASE_VALUE = 100
VETERAN_BONUS = 50
HOMELESS_BONUS = 75

# Exactly one tier applies; any other non-empty income level gets the default
INCOME_TIER_BONUS = {
    "very_low": 100,
    "low": 75,
    "moderate": 50,
}
DEFAULT_INCOME_BONUS = 25


def calculate_lead_value(lead: Union[Lead, Mapping[str, Any]]) -> int:
    """Estimate a lead's value from its profile."""
    lead = Lead.coerce(lead)
    value = BASE_VALUE

    if lead.is_veteran:
        value += VETERAN_BONUS
    if lead.is_homeless:
        value += HOMELESS_BONUS
    if lead.income_level:
        value += INCOME_TIER_BONUS.get(lead.income_level, DEFAULT_INCOME_BONUS)

    return value
