"""
billing.py — Subscription plans and the monthly analysis allowance.
"""

from typing import Optional

from models import User
from utils import as_utc, logger, utcnow

PLANS = {
    "free": {
        "name": "Free",
        "price": "$0",
        "monthly_limit": 5,
        "features": [
            "5 resume analyses per month",
            "Basic risk indicators",
            "7-day history",
            "Email support",
        ],
    },
    "pro": {
        "name": "Pro",
        "price": "$49",
        "monthly_limit": 100,
        "features": [
            "100 resume analyses per month",
            "Detailed AI explanations",
            "Unlimited history",
            "Priority support",
        ],
    },
    "enterprise": {
        "name": "Enterprise",
        "price": "$99",
        "monthly_limit": None,
        "features": [
            "Unlimited resume analyses",
            "Team workspaces & collaboration",
            "Dedicated support",
        ],
    },
}


def list_plans() -> list[dict]:
    return [{"id": plan_id, **plan} for plan_id, plan in PLANS.items()]


def roll_usage_period(user: User) -> None:
    """Reset the monthly counter once the calendar month has changed."""
    now = utcnow()
    started = as_utc(user.usage_period_start) if user.usage_period_start else None
    if started is None or (started.year, started.month) != (now.year, now.month):
        if user.monthly_analysis_count:
            logger.info("Resetting monthly analysis count for user %s", user.username)
        user.monthly_analysis_count = 0
        user.usage_period_start = now


def remaining_quota(user: User) -> Optional[int]:
    """Analyses left this month; None means unlimited."""
    roll_usage_period(user)
    if user.monthly_analysis_limit is None:
        return None
    return max(user.monthly_analysis_limit - user.monthly_analysis_count, 0)


def change_plan(user: User, plan: str) -> None:
    if plan not in PLANS:
        raise ValueError(f"Unknown plan: {plan}")
    user.subscription_plan = plan
    user.monthly_analysis_limit = PLANS[plan]["monthly_limit"]
    logger.info("User %s moved to plan %s", user.username, plan)
