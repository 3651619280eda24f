"""Synthetic last-resort destination payload.

Returned when every live tier failed and nothing is cached. Every value is
clearly labelled as placeholder data; amounts are derived from the request
so the structure is still useful for budgeting screens.
"""

from datetime import datetime, timezone
from typing import Any, Dict

from destiq.domain.models.fallback import FallbackContext

# Share of the monthly budget per category
BUDGET_SPLIT = {
    "housing": (0.40, "Shared or student housing recommended"),
    "food": (0.25, "Cook at home to save"),
    "transport": (0.10, "Use a monthly pass"),
    "activities": (0.15, "Free events are common"),
    "utilities": (0.05, "Often included in rent"),
    "emergency": (0.05, "Keep as buffer"),
}


def build_mock_payload(context: FallbackContext) -> Dict[str, Any]:
    location, query = context.location, context.query
    breakdown = {
        category: {
            "amount": round(query.budget * share, 2),
            "percentage": int(share * 100),
            "recommendation": f"Mock: {advice}",
        }
        for category, (share, advice) in BUDGET_SPLIT.items()
    }
    return {
        "summary": (
            f"Mock destination intelligence for {location.city}, {location.country}. "
            "Live sources were unavailable."
        ),
        "destination": context.destination_label,
        "origin": context.origin_label,
        "budget_plan": {
            "total_budget": query.budget,
            "currency": query.currency,
            "duration_months": query.duration_months,
            "breakdown": breakdown,
            "monthly_allocation": [
                {"month": month, "planned": query.budget, "notes": "Mock: Budget allocation"}
                for month in range(1, query.duration_months + 1)
            ],
        },
        "housing": {"options": ["Mock: Shared apartments"], "neighborhoods": ["Mock: Various neighborhoods"]},
        "cultural": {
            "primary_language": location.primary_language,
            "tips": ["Mock: Learn basic greetings", "Mock: Check local tipping customs"],
        },
        "safety": {"safe_neighborhoods": ["Mock Safe Area 1"], "tips": ["Mock: Keep valuables out of sight"]},
        "recommendations": [
            {"interest": interest, "suggestions": [f"Mock {interest} activity"]}
            for interest in query.interests
        ],
        "generated_at": datetime.now(timezone.utc).isoformat(),
        "is_mock": True,
    }
