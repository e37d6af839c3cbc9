"""
Bid adjustment policy
Turns a curve-searched bid into a safe, auditable recommendation
"""

import math
from typing import Optional, Sequence, Dict, List, Tuple

from .bid_search import find_optimal_bid
from .config import settings
from .logger import get_logger
from .market_curve import generate_market_curve
from .metrics import calculate_metrics, safe_divide
from .models import (
    OptimizationTarget,
    PerformanceGroupConfig,
    BidAdjustmentResult,
    BidSample,
    DerivedMetrics,
    PlacementPerformance,
)

logger = get_logger(__name__)


class BidAdjustmentPolicy:
    """
    Calculate bid changes for targets:
    - search the market curve for the goal's optimal bid
    - limit the move to a percentage of the current bid
    - keep the result inside platform bid bounds
    - explain the decision
    """

    def __init__(self, min_bid: float = None, max_bid: float = None, max_change_percent: float = None):
        self.min_bid = settings.min_bid if min_bid is None else min_bid
        self.max_bid = settings.max_bid if max_bid is None else max_bid
        self.max_change_percent = (
            settings.max_bid_change_percent if max_change_percent is None else max_change_percent
        )
        if self.min_bid > self.max_bid:
            raise ValueError(f"min_bid {self.min_bid} exceeds max_bid {self.max_bid}")

    def has_sufficient_data(self, target: OptimizationTarget) -> bool:
        return target.impressions >= settings.min_impressions and target.clicks >= settings.min_clicks

    def calculate_bid_adjustment(
        self,
        target: OptimizationTarget,
        config: PerformanceGroupConfig,
        history: Optional[Sequence[BidSample]] = None
    ) -> Optional[BidAdjustmentResult]:
        """
        Main entry point for one target.
        Returns None when the target has too little data to act on.
        """
        if not self.has_sufficient_data(target):
            logger.info(
                f"Skipping {target.id}: insufficient data "
                f"({target.impressions} impressions, {target.clicks} clicks)"
            )
            return None

        metrics = calculate_metrics(target)
        curve = generate_market_curve(target, history)
        raw_bid = find_optimal_bid(curve, config)
        if raw_bid is None:
            return None

        new_bid, clamps = self.clamp_bid(raw_bid, target.current_bid)
        change_percent = round(safe_divide(new_bid - target.current_bid, target.current_bid) * 100, 2)

        if new_bid > target.current_bid:
            action_type = "increase"
        elif new_bid < target.current_bid:
            action_type = "decrease"
        else:
            action_type = "unchanged"

        reason = self.generate_optimization_reason(metrics, config, target, clamps, new_bid)

        if clamps:
            logger.info(
                f"✂️ {target.id}: raw bid ${raw_bid:.2f} clamped to ${new_bid:.2f} ({', '.join(clamps)})"
            )

        return BidAdjustmentResult(
            target_id=target.id,
            current_bid=target.current_bid,
            raw_bid=raw_bid,
            new_bid=new_bid,
            bid_change_percent=change_percent,
            action_type=action_type,
            reason=reason,
            clamps=clamps,
            components={
                "acos": round(metrics.acos, 2),
                "roas": round(metrics.roas, 2),
                "cvr": round(metrics.cvr, 2),
                "cpc": round(metrics.cpc, 2),
                "curve_points": len(curve),
            },
        )

    def clamp_bid(self, raw_bid: float, current_bid: float) -> Tuple[float, List[str]]:
        """
        Apply the per-call change limit, then the hard bid bounds.
        Hard bounds win when the two conflict.
        """
        clamps = []
        upper = current_bid * (1 + self.max_change_percent / 100)
        lower = current_bid * (1 - self.max_change_percent / 100)

        bid = raw_bid
        if bid > upper:
            bid = upper
            clamps.append("max_increase")
        elif bid < lower:
            bid = lower
            clamps.append("max_decrease")

        if bid > self.max_bid:
            bid = self.max_bid
            clamps.append("max_bid")
        elif bid < self.min_bid:
            bid = self.min_bid
            clamps.append("min_bid")

        bid = round(bid, 2)

        # Rounding to cents must not step outside the allowed band
        high = min(upper, self.max_bid)
        low = max(lower, self.min_bid)
        if low <= high:
            if bid > high:
                bid = math.floor(round(high * 100, 6)) / 100
            elif bid < low:
                bid = math.ceil(round(low * 100, 6)) / 100

        return bid, clamps

    def generate_optimization_reason(
        self,
        metrics: DerivedMetrics,
        config: PerformanceGroupConfig,
        target: OptimizationTarget,
        clamps: Optional[List[str]] = None,
        new_bid: Optional[float] = None
    ) -> str:
        reasons = []
        goal = config.optimization_goal
        new_bid = target.current_bid if new_bid is None else new_bid
        raising = new_bid > target.current_bid

        if goal == "target_acos":
            target_acos = settings.target_acos if config.target_acos is None else config.target_acos
            if metrics.acos > target_acos:
                reasons.append(f"ACoS {metrics.acos:.1f}% above target {target_acos:.1f}%")
            elif metrics.acos > 0:
                reasons.append(f"ACoS {metrics.acos:.1f}% below target {target_acos:.1f}%, room to raise bid")
        elif goal == "target_roas":
            target_roas = settings.target_roas if config.target_roas is None else config.target_roas
            if metrics.roas < target_roas:
                reasons.append(f"ROAS {metrics.roas:.2f} below target {target_roas:.2f}")
            else:
                reasons.append(f"ROAS {metrics.roas:.2f} above target {target_roas:.2f}, room to raise bid")
        elif goal == "daily_spend_limit" and config.daily_spend_limit is not None:
            reasons.append(f"keeping estimated spend within ${config.daily_spend_limit:.2f}/day")
        elif goal == "daily_cost" and config.daily_cost_target is not None:
            reasons.append(f"steering estimated spend toward ${config.daily_cost_target:.2f}/day")
        elif goal == "maximize_sales":
            reasons.append("maximizing sales up to where marginal revenue meets marginal cost")

        if metrics.cvr > 5:
            reasons.append(f"high conversion rate {metrics.cvr:.1f}%")
        elif metrics.cvr < 1 and target.clicks > 50:
            reasons.append(f"low conversion rate {metrics.cvr:.1f}%")

        if target.impressions < 100 and raising:
            reasons.append("low impressions, raising bid for traffic")

        for clamp in clamps or []:
            reasons.append(self._get_clamp_note(clamp))

        if not reasons:
            if raising:
                return "market curve shows marginal gain from a higher bid"
            elif new_bid < target.current_bid:
                return "market curve shows better return at a lower bid"
            return "current bid is in the optimal range"
        return "; ".join(reasons)

    def _get_clamp_note(self, clamp: str) -> str:
        return {
            "max_increase": f"increase limited to {self.max_change_percent:.0f}%",
            "max_decrease": f"decrease limited to {self.max_change_percent:.0f}%",
            "max_bid": f"capped at max bid ${self.max_bid:.2f}",
            "min_bid": f"raised to min bid ${self.min_bid:.2f}",
        }.get(clamp, clamp)

    def optimize_performance_group(
        self,
        targets: Sequence[OptimizationTarget],
        config: PerformanceGroupConfig,
        histories: Optional[Dict[str, Sequence[BidSample]]] = None
    ) -> List[BidAdjustmentResult]:
        """
        Run calculate_bid_adjustment over a group of targets.
        Drops targets with insufficient data and changes too small to apply.
        """
        histories = histories or {}
        results = []
        skipped = 0

        for target in targets:
            result = self.calculate_bid_adjustment(target, config, histories.get(target.id))
            if result is None:
                skipped += 1
                continue
            if abs(result.bid_change_percent) <= settings.min_change_percent:
                continue
            results.append(result)

        logger.info(
            f"📊 Performance group ({config.optimization_goal}): "
            f"{len(targets)} targets, {len(results)} adjustments, {skipped} skipped"
        )
        return results


def calculate_placement_adjustments(
    placement_rows: Sequence[PlacementPerformance],
    target_acos: float = None
) -> Dict[str, int]:
    """
    Rule-of-thumb placement tilts within ±50%.
    With a target ACoS, tilt by distance from the target; otherwise by ROAS around 3.
    """
    adjustments = {"top_of_search": 0, "product_page": 0, "rest_of_search": 0}

    for row in placement_rows:
        acos = safe_divide(row.spend, row.sales) * 100
        roas = safe_divide(row.sales, row.spend)
        adjustment = 0

        if target_acos:
            if 0 < acos < target_acos:
                adjustment = min(50, round((target_acos - acos) / target_acos * 100))
            elif acos > target_acos:
                adjustment = max(-50, round((target_acos - acos) / acos * 100))
        else:
            if roas > 3:
                adjustment = min(50, round((roas - 3) * 10))
            elif 0 < roas < 1:
                adjustment = max(-50, round((roas - 1) * 50))

        if row.placement in adjustments:
            adjustments[row.placement] = adjustment

    return adjustments
