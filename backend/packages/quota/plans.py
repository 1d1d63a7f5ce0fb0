"""Plan tier to daily budget catalog."""

from types import MappingProxyType
from typing import List, Mapping, Optional, Union

from packages.quota.exceptions import InvalidPlan
from packages.quota.models.domain.enums import PlanTier

DEFAULT_DAILY_BUDGETS: Mapping[PlanTier, int] = MappingProxyType(
    {
        PlanTier.FREE: 10,
        PlanTier.PREMIUM: 500,
        PlanTier.PRO: 2000,
    }
)


class PlanCatalog:
    """
    Static mapping from plan tier to daily operation budget.

    Built once at process start and never mutated. Lookups with an unknown
    plan fall back to the free budget; use parse() where an unknown plan is
    an error.
    """

    def __init__(self, budgets: Optional[Mapping[PlanTier, int]] = None):
        budgets = dict(budgets if budgets is not None else DEFAULT_DAILY_BUDGETS)
        missing = [tier.value for tier in PlanTier if tier not in budgets]
        if missing:
            raise ValueError(f"Plan catalog is missing budgets for: {', '.join(missing)}")
        for tier, budget in budgets.items():
            if not isinstance(budget, int) or isinstance(budget, bool) or budget <= 0:
                raise ValueError(f"Daily budget for {tier} must be a positive integer, got {budget!r}")
        self._budgets: Mapping[PlanTier, int] = MappingProxyType(budgets)

    def budget_for(self, plan: Union[PlanTier, str, None]) -> int:
        """
        Get the daily budget for a plan.

        Args:
            plan: Tier or raw stored plan value

        Returns:
            Daily operation budget; the free budget when plan is unknown
        """
        tier = PlanTier.from_value(plan)
        if tier is None:
            return self._budgets[PlanTier.FREE]
        return self._budgets[tier]

    def parse(self, plan: Union[PlanTier, str, None]) -> PlanTier:
        """Strictly convert a plan value, raising InvalidPlan outside the closed set."""
        tier = PlanTier.from_value(plan, strict=True)
        if tier is None:
            raise InvalidPlan(plan)
        return tier

    def is_valid(self, plan: Union[PlanTier, str, None]) -> bool:
        return PlanTier.from_value(plan, strict=True) is not None

    def tiers(self) -> List[PlanTier]:
        return list(self._budgets.keys())
