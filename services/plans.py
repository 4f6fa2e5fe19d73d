from enum import Enum


class SubscriptionPlan(str, Enum):
    FREE = "free"
    BASIC = "basic"
    STANDARD = "standard"
    PREMIUM = "premium"


# Maximum simultaneously active products per plan
PLAN_PRODUCT_LIMITS: dict[str, int] = {
    SubscriptionPlan.FREE.value: 10,
    SubscriptionPlan.BASIC.value: 30,
    SubscriptionPlan.STANDARD.value: 50,
    SubscriptionPlan.PREMIUM.value: 100,
}


def is_valid_plan(plan: str) -> bool:
    return plan in PLAN_PRODUCT_LIMITS


def product_limit_for(plan: str) -> int:
    try:
        return PLAN_PRODUCT_LIMITS[plan]
    except KeyError:
        raise ValueError(f"Unknown subscription plan: {plan}") from None
