"""
Optimal bid search over a market curve
"""

from typing import Optional, Sequence

from .config import settings
from .logger import get_logger
from .metrics import acos_risk, safe_divide
from .models import MarketCurvePoint, PerformanceGroupConfig

logger = get_logger(__name__)


def find_optimal_bid(curve: Sequence[MarketCurvePoint], config: PerformanceGroupConfig) -> Optional[float]:
    """
    Pick a bid from the curve according to the optimization goal.

    maximize_sales stops at the last point where marginal revenue still
    covers marginal cost. Threshold goals take the highest bid that
    satisfies the threshold and fall back to the lowest bid when none does.
    daily_cost takes the bid whose estimated spend is closest to the target.
    """
    if not curve:
        return None

    points = sorted(curve, key=lambda p: p.bid_level)
    goal = config.optimization_goal

    if goal == "maximize_sales":
        best = points[0].bid_level
        for point in points[1:]:
            if point.marginal_revenue < point.marginal_cost:
                break
            best = point.bid_level
        return best

    if goal == "daily_cost":
        if config.daily_cost_target is None:
            logger.warning("⚠️ daily_cost goal without a target, using lowest bid")
            return points[0].bid_level
        # Closest estimated spend wins; ties keep the lower bid
        return min(points, key=lambda p: abs(p.estimated_spend - config.daily_cost_target)).bid_level

    if goal == "target_acos":
        target = settings.target_acos if config.target_acos is None else config.target_acos
        satisfies = lambda p: acos_risk(p.estimated_spend, p.estimated_sales) <= target
    elif goal == "target_roas":
        target = settings.target_roas if config.target_roas is None else config.target_roas
        satisfies = lambda p: safe_divide(p.estimated_sales, p.estimated_spend) >= target
    elif goal == "daily_spend_limit":
        if config.daily_spend_limit is None:
            logger.warning("⚠️ daily_spend_limit goal without a limit, using lowest bid")
            return points[0].bid_level
        target = config.daily_spend_limit
        satisfies = lambda p: p.estimated_spend <= target
    else:
        raise ValueError(f"Unknown optimization goal: {goal}")

    best = None
    for point in points:
        if satisfies(point):
            best = point.bid_level

    if best is None:
        logger.info(f"No curve point meets {goal} target {target}, falling back to lowest bid")
        return points[0].bid_level
    return best
