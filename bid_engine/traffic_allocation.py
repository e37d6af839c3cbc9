"""
Traffic allocation across placements
Bounded greedy hill-climbing over placement tilts
"""

from typing import Optional, Dict, List

from .coordination import max_tilt_for_strategy
from .logger import get_logger
from .metrics import safe_divide
from .models import (
    PLACEMENT_TYPES,
    ALLOCATION_GOALS,
    AllocationConfig,
    AllocationImprovement,
    DataConfidence,
    MarginalBenefitResult,
    OptimizationConstraints,
    PlacementAggregate,
    PlacementAllocation,
    SimpleAllocationResult,
    TiltChange,
    TrafficAllocationResult,
    resolve_constraints,
)

logger = get_logger(__name__)


class TrafficAllocationOptimizer:
    """
    Reallocate placement tilts toward an optimization goal.

    Each iteration raises the best-scored eligible placements by one step
    while the total tilt budget allows. When nothing can be raised, one
    step moves from the weakest placement to the strongest. The loop ends
    when an iteration changes nothing or the iteration cap is reached.
    """

    def __init__(self, allocation_config: Optional[AllocationConfig] = None):
        self.config = allocation_config or AllocationConfig()

    def score_placement(self, benefit: MarginalBenefitResult, goal: str) -> float:
        if goal == "maximize_roas":
            return benefit.marginal_roas * benefit.confidence
        elif goal == "minimize_acos":
            return (100 - benefit.marginal_acos) * benefit.confidence / 100
        elif goal == "maximize_sales":
            return benefit.marginal_sales * benefit.confidence
        elif goal == "balanced":
            return (0.6 * benefit.marginal_roas + 0.4 * benefit.elasticity) * benefit.confidence
        raise ValueError(f"Unknown allocation goal: {goal}")

    def optimize_traffic_allocation(
        self,
        current_adjustments: Dict[str, float],
        benefits: Dict[str, MarginalBenefitResult],
        goal: str = "balanced",
        constraints: Optional[OptimizationConstraints] = None,
        current_performance: Optional[Dict[str, PlacementAggregate]] = None
    ) -> TrafficAllocationResult:
        """
        Main entry point.
        current_performance holds period sales/spend per placement and is
        the baseline for expected totals; without it the baseline is zero.
        """
        if goal not in ALLOCATION_GOALS:
            raise ValueError(f"Unknown allocation goal: {goal}")
        constraints = resolve_constraints(constraints)
        current_performance = current_performance or {}

        placements = _ordered_placements(benefits)
        current = {p: float(current_adjustments.get(p, 0)) for p in placements}
        suggested = self._run_allocation(current, benefits, goal, constraints)

        reasons = {
            p: self.generate_allocation_reason(benefits[p], current[p], suggested[p]) for p in placements
        }
        return self._build_result(current, suggested, benefits, reasons, goal, constraints, current_performance)

    def apply_tilt_change_limits(
        self,
        result: TrafficAllocationResult,
        performance: Dict[str, PlacementAggregate],
        bidding_strategy: str = "fixed",
        constraints: Optional[OptimizationConstraints] = None,
        current_performance: Optional[Dict[str, PlacementAggregate]] = None
    ) -> TrafficAllocationResult:
        """
        Limit how far one pass may move each tilt, by the placement's data volume.
        performance holds the clicks/orders/spend the confidence is judged on.
        Expected totals and warnings are recomputed for the limited tilts.
        """
        constraints = resolve_constraints(constraints)
        current_performance = current_performance or {}

        current, suggested, benefits, reasons = {}, {}, {}, {}
        for a in result.allocations:
            p = a.placement_type
            perf = performance.get(p)
            data = calculate_data_confidence(
                perf.clicks if perf else 0, perf.orders if perf else 0, perf.spend if perf else 0.0
            )
            change = self.limit_tilt_change(
                a.current_adjustment, a.suggested_adjustment, data, bidding_strategy,
                constraints.min_adjustment_per_placement,
            )
            current[p] = a.current_adjustment
            suggested[p] = change.final_adjustment
            benefits[p] = a.marginal_benefit
            reasons[p] = a.allocation_reason
            if change.was_limited:
                reasons[p] = f"{a.allocation_reason}; {change.reason}"
                logger.info(
                    f"✂️ {p}: tilt {a.suggested_adjustment:.0f}% limited to {change.final_adjustment:.0f}% ({change.reason})"
                )

        return self._build_result(
            current, suggested, benefits, reasons, result.optimization_goal, constraints, current_performance
        )

    def limit_tilt_change(
        self,
        current: float,
        suggested: float,
        data: DataConfidence,
        bidding_strategy: str = "fixed",
        min_adjustment: float = -50.0
    ) -> TiltChange:
        """
        Unreliable data keeps the current tilt. Otherwise the move is capped at
        5/10/20 points by confidence, or 25% of the current tilt when larger,
        and the result stays inside the bidding strategy's tilt range.
        """
        if not data.is_reliable:
            return TiltChange(delta=0, final_adjustment=current, reason=data.reason, was_limited=True)

        if data.confidence >= 0.8:
            max_step = 20
        elif data.confidence >= 0.6:
            max_step = 10
        else:
            max_step = 5

        max_delta = max(abs(current) * 0.25, max_step)
        delta = suggested - current
        was_limited = False
        if abs(delta) > max_delta:
            delta = max_delta if delta > 0 else -max_delta
            was_limited = True

        strategy_max = max_tilt_for_strategy(bidding_strategy)
        final = current + delta
        if final > strategy_max:
            was_limited = True
        final = round(max(min_adjustment, min(strategy_max, final)))

        return TiltChange(
            delta=final - current,
            final_adjustment=final,
            reason=f"confidence {data.confidence * 100:.0f}%, move capped at {max_delta:.0f} pts",
            was_limited=was_limited,
        )

    def optimize_traffic_allocation_simple(
        self,
        benefits: Dict[str, MarginalBenefitResult],
        current_adjustments: Dict[str, float],
        goal: str = "balanced",
        constraints: Optional[OptimizationConstraints] = None,
        current_performance: Optional[Dict[str, PlacementAggregate]] = None
    ) -> SimpleAllocationResult:
        """
        Flat summary of optimize_traffic_allocation.
        Without a performance baseline the ROAS change is the ROAS of the
        incremental spend.
        """
        result = self.optimize_traffic_allocation(
            current_adjustments, benefits, goal, constraints, current_performance
        )
        sales_increase = sum(a.expected_sales_change for a in result.allocations)
        spend_change = sum(a.expected_spend_change for a in result.allocations)

        if current_performance:
            roas_change = result.improvement.roas_change
        else:
            roas_change = safe_divide(sales_increase, spend_change)

        return SimpleAllocationResult(
            optimized_adjustments=result.suggested_adjustments,
            expected_sales_increase=round(sales_increase, 2),
            expected_spend_change=round(spend_change, 2),
            expected_roas_change=round(roas_change, 2),
            confidence=result.confidence,
        )

    def _run_allocation(
        self,
        current: Dict[str, float],
        benefits: Dict[str, MarginalBenefitResult],
        goal: str,
        constraints: OptimizationConstraints
    ) -> Dict[str, float]:
        step = self.config.step_size
        max_total = constraints.max_total_adjustment
        min_per = constraints.min_adjustment_per_placement
        max_per = constraints.max_adjustment_per_placement

        scores = {p: self.score_placement(benefits[p], goal) for p in current}
        ranked = sorted(current, key=lambda p: scores[p], reverse=True)
        values = dict(current)

        for _ in range(self.config.max_iterations):
            before = dict(values)
            total = sum(values.values())
            increased = False

            for p in ranked:
                benefit = benefits[p]
                value = values[p]
                if value >= max_per or value >= benefit.diminishing_point + 20:
                    continue
                if benefit.marginal_roas <= 1 and goal != "maximize_sales":
                    continue
                if total + step > max_total:
                    continue

                new_value = min(value + step, max_per, benefit.optimal_range.max)
                if new_value <= value:
                    continue
                values[p] = new_value
                total += new_value - value
                increased = True

            if not increased and len(ranked) > 1:
                highest, lowest = ranked[0], ranked[-1]
                if (
                    scores[lowest] < scores[highest] * self.config.transfer_score_ratio
                    and values[lowest] > min_per
                    and values[highest] < max_per
                ):
                    amount = min(step, values[lowest] - min_per, max_per - values[highest])
                    values[lowest] -= amount
                    values[highest] += amount

            if values == before:
                break

        for p in values:
            values[p] = max(min_per, min(max_per, values[p]))

        # Clamping can raise values, so re-check the total budget from the weakest up
        excess = sum(values.values()) - max_total
        for p in reversed(ranked):
            if excess <= 0:
                break
            cut = min(excess, values[p] - min_per)
            if cut > 0:
                values[p] -= cut
                excess -= cut

        return values

    def _build_result(
        self,
        current: Dict[str, float],
        suggested: Dict[str, float],
        benefits: Dict[str, MarginalBenefitResult],
        reasons: Dict[str, str],
        goal: str,
        constraints: OptimizationConstraints,
        current_performance: Dict[str, PlacementAggregate]
    ) -> TrafficAllocationResult:
        allocations = []
        for p in current:
            benefit = benefits[p]
            delta = suggested[p] - current[p]
            allocations.append(PlacementAllocation(
                placement_type=p,
                current_adjustment=current[p],
                suggested_adjustment=suggested[p],
                adjustment_delta=delta,
                expected_sales_change=round(delta * benefit.marginal_sales, 2),
                expected_spend_change=round(delta * benefit.marginal_spend, 2),
                marginal_benefit=benefit,
                allocation_reason=reasons[p],
            ))

        result = self.calculate_expected_results(allocations, current_performance, goal)
        result.warnings.extend(self._check_constraints(result, current_performance, constraints))

        for warning in result.warnings:
            logger.warning(f"⚠️ {warning}")
        logger.info(
            f"🎯 Allocation ({goal}): "
            + ", ".join(f"{a.placement_type} {a.current_adjustment:.0f}%→{a.suggested_adjustment:.0f}%" for a in allocations)
            + f" | confidence {result.confidence:.2f}"
        )
        return result

    def calculate_expected_results(
        self,
        allocations: List[PlacementAllocation],
        current_performance: Dict[str, PlacementAggregate],
        goal: str
    ) -> TrafficAllocationResult:
        current_sales = sum(perf.sales for perf in current_performance.values())
        current_spend = sum(perf.spend for perf in current_performance.values())
        sales_change = sum(a.expected_sales_change for a in allocations)
        spend_change = sum(a.expected_spend_change for a in allocations)

        total_sales = current_sales + sales_change
        total_spend = current_spend + spend_change
        expected_roas = safe_divide(total_sales, total_spend)
        expected_acos = safe_divide(total_spend, total_sales) * 100
        current_roas = safe_divide(current_sales, current_spend)
        current_acos = safe_divide(current_spend, current_sales) * 100

        confidence = min((a.marginal_benefit.confidence for a in allocations), default=0.0)

        return TrafficAllocationResult(
            allocations=allocations,
            total_expected_sales=round(total_sales, 2),
            total_expected_spend=round(total_spend, 2),
            expected_roas=round(expected_roas, 2),
            expected_acos=round(expected_acos, 2),
            improvement=AllocationImprovement(
                sales_change=round(sales_change, 2),
                sales_change_percent=round(safe_divide(sales_change, current_sales) * 100, 2),
                roas_change=round(expected_roas - current_roas, 2),
                acos_change=round(expected_acos - current_acos, 2),
            ),
            optimization_goal=goal,
            confidence=confidence,
        )

    def generate_allocation_reason(self, benefit: MarginalBenefitResult, current: float, suggested: float) -> str:
        delta = suggested - current

        if abs(delta) < self.config.step_size:
            return "keep current tilt, marginal benefit is stable"

        if delta > 0:
            if benefit.marginal_roas > 2:
                return f"marginal ROAS {benefit.marginal_roas:.2f}, increasing tilt by {delta:.0f}%"
            elif benefit.marginal_roas > 1:
                return f"positive marginal benefit, moderate tilt increase of {delta:.0f}%"
            return f"increasing tilt by {delta:.0f}% toward the sales goal"

        if benefit.marginal_roas < 0.5:
            return f"low marginal ROAS {benefit.marginal_roas:.2f}, reducing tilt by {abs(delta):.0f}%"
        elif current > benefit.diminishing_point:
            return f"past diminishing point {benefit.diminishing_point:.0f}%, reduce tilt"
        return "transferring budget to a more efficient placement"

    def _check_constraints(
        self,
        result: TrafficAllocationResult,
        current_performance: Dict[str, PlacementAggregate],
        constraints: OptimizationConstraints
    ) -> List[str]:
        warnings = []
        current_spend = sum(perf.spend for perf in current_performance.values())
        spend_change = sum(a.expected_spend_change for a in result.allocations)

        if current_spend > 0:
            spend_increase = spend_change / current_spend * 100
            if spend_increase > constraints.max_spend_increase:
                warnings.append(
                    f"expected spend increase {spend_increase:.1f}% exceeds limit {constraints.max_spend_increase:.0f}%"
                )
        if result.total_expected_sales > 0 and result.expected_acos > constraints.target_acos:
            warnings.append(
                f"expected ACoS {result.expected_acos:.1f}% above target {constraints.target_acos:.1f}%"
            )
        if result.total_expected_spend > 0 and result.expected_roas < constraints.target_roas:
            warnings.append(
                f"expected ROAS {result.expected_roas:.2f} below target {constraints.target_roas:.2f}"
            )
        return warnings


def _ordered_placements(benefits: Dict[str, MarginalBenefitResult]) -> List[str]:
    known = [p for p in PLACEMENT_TYPES if p in benefits]
    return known + [p for p in benefits if p not in PLACEMENT_TYPES]


def calculate_data_confidence(clicks: int, orders: int, spend: float) -> DataConfidence:
    """Volume tiers for trusting a placement's numbers; orders matter most"""
    if orders >= 20 and clicks >= 200 and spend >= 100:
        return DataConfidence(1.0, True, "ample data (20+ orders, 200+ clicks)")
    elif orders >= 10 and clicks >= 100 and spend >= 50:
        return DataConfidence(0.8, True, "good data (10+ orders, 100+ clicks)")
    elif orders >= 5 and clicks >= 50 and spend >= 25:
        return DataConfidence(0.6, True, "moderate data (5+ orders, 50+ clicks)")
    elif orders >= 2 and clicks >= 20:
        return DataConfidence(0.4, False, "too few orders to move tilt, keep observing")
    return DataConfidence(0.2, False, "insufficient data, tilt unchanged")
