"""
Bid optimization pass
Runs the full engine over in-memory snapshots and returns one decision record
"""

from dataclasses import replace
from datetime import datetime
from typing import Dict, List, Optional, Sequence, Tuple

import pandas as pd
import pytz

from bid_engine.aggregation import (
    aggregate_placement_frame,
    hourly_points_from_frame,
    placement_points_from_frame,
    targets_from_frame,
)
from bid_engine.bid_policy import BidAdjustmentPolicy
from bid_engine.config import settings
from bid_engine.coordination import PlacementBidCoordinator, max_tilt_for_strategy
from bid_engine.intraday import IntradayAdjustmentCalculator
from bid_engine.logger import get_logger
from bid_engine.metrics import safe_divide
from bid_engine.models import (
    BidSample,
    HourlyDataPoint,
    OptimizationConstraints,
    OptimizationDecision,
    OptimizationTarget,
    PerformanceGroupConfig,
    PlacementAggregate,
    PlacementDataPoint,
    resolve_constraints,
)
from bid_engine.placement_benefit import PlacementMarginalBenefitAnalyzer
from bid_engine.traffic_allocation import TrafficAllocationOptimizer

logger = get_logger(__name__)


class BidOptimizer:
    def __init__(
        self,
        config: Optional[PerformanceGroupConfig] = None,
        allocation_goal: str = "balanced",
        constraints: Optional[OptimizationConstraints] = None,
        bidding_strategy: str = "fixed"
    ):
        self.config = config or PerformanceGroupConfig()
        self.allocation_goal = allocation_goal
        self.bidding_strategy = bidding_strategy
        self.constraints = self._strategy_constraints(resolve_constraints(constraints))

        self.bid_policy = BidAdjustmentPolicy()
        self.analyzer = PlacementMarginalBenefitAnalyzer()
        self.allocator = TrafficAllocationOptimizer()
        self.coordinator = PlacementBidCoordinator()
        self.intraday = IntradayAdjustmentCalculator()
        self.tz = pytz.timezone(settings.timezone)

        self.stats = {
            "targets_evaluated": 0,
            "bids_updated": 0,
            "bids_unchanged": 0,
            "skipped_insufficient_data": 0,
            "bids_clamped": 0,
            "errors": 0,
            "total_bid_increase": 0.0,
            "total_bid_decrease": 0.0
        }

    def run(
        self,
        targets: Sequence[OptimizationTarget],
        placement_points: Optional[Dict[str, Sequence[PlacementDataPoint]]] = None,
        current_tilts: Optional[Dict[str, float]] = None,
        current_performance: Optional[Dict[str, PlacementAggregate]] = None,
        hourly: Optional[Sequence[HourlyDataPoint]] = None,
        histories: Optional[Dict[str, Sequence[BidSample]]] = None,
        base_bid: Optional[float] = None
    ) -> OptimizationDecision:
        """Main optimization workflow"""
        logger.info("=" * 60)
        logger.info("🚀 Starting Bid Optimization Pass")
        logger.info(f"Timestamp: {datetime.now(self.tz).isoformat()}")
        logger.info(f"Goal: {self.config.optimization_goal} / placements: {self.allocation_goal}")
        logger.info("=" * 60)

        decision = OptimizationDecision()
        current_tilts = current_tilts or {}
        histories = histories or {}

        # Step 1: Target bids
        logger.info(f"🧮 Step 1: Calculating bids for {len(targets)} targets")
        for target in targets:
            self.stats["targets_evaluated"] += 1
            try:
                result = self.bid_policy.calculate_bid_adjustment(target, self.config, histories.get(target.id))
            except Exception as e:
                logger.error(f"❌ Bid calculation failed for {target.id}: {e}", exc_info=True)
                self.stats["errors"] += 1
                continue

            if result is None:
                self.stats["skipped_insufficient_data"] += 1
                continue
            if result.clamps:
                self.stats["bids_clamped"] += 1
            if abs(result.bid_change_percent) <= settings.min_change_percent:
                self.stats["bids_unchanged"] += 1
                continue

            decision.bid_adjustments.append(result)
            self.stats["bids_updated"] += 1
            bid_change = result.new_bid - result.current_bid
            if bid_change > 0:
                self.stats["total_bid_increase"] += bid_change
            else:
                self.stats["total_bid_decrease"] += abs(bid_change)

            logger.info(
                f"📈 {target.name or target.id}: "
                f"${result.current_bid:.2f} → ${result.new_bid:.2f} ({result.reason})"
            )

        # Step 2: Placement tilts
        if placement_points is not None:
            logger.info("📊 Step 2: Placement marginal benefit")
            decision.marginal_benefits = self.analyzer.analyze_placements(placement_points, current_tilts)

            logger.info("🎯 Step 3: Traffic allocation")
            allocation = self.allocator.optimize_traffic_allocation(
                current_tilts,
                decision.marginal_benefits,
                self.allocation_goal,
                self.constraints,
                current_performance,
            )
            decision.allocation = self.allocator.apply_tilt_change_limits(
                allocation,
                current_performance or self._window_totals(placement_points),
                self.bidding_strategy,
                self.constraints,
                current_performance,
            )
            decision.warnings.extend(decision.allocation.warnings)

            # Step 4: Keep base bid and tilt changes from compounding
            previous_base, new_base = self._base_bids(decision, targets, base_bid)
            if previous_base and new_base:
                self._coordinate(decision, previous_base, new_base, current_tilts)

        # Step 5: Intraday
        if hourly:
            decision.intraday_adjustment = self.intraday.calculate_intraday_adjustment(hourly)
            logger.info(f"🕐 Intraday adjustment for this hour: {decision.intraday_adjustment:+d}%")

        self._print_summary()
        return decision

    def run_from_frames(
        self,
        target_frame: pd.DataFrame,
        placement_frame: Optional[pd.DataFrame] = None,
        current_tilts: Optional[Dict[str, float]] = None,
        hourly_frame: Optional[pd.DataFrame] = None
    ) -> OptimizationDecision:
        """Same pass, fed by report-shaped frames"""
        placement_points = current_performance = None
        if placement_frame is not None:
            placement_points = placement_points_from_frame(placement_frame)
            current_performance = aggregate_placement_frame(placement_frame)

        hourly = hourly_points_from_frame(hourly_frame) if hourly_frame is not None else None

        return self.run(
            targets_from_frame(target_frame),
            placement_points=placement_points,
            current_tilts=current_tilts,
            current_performance=current_performance,
            hourly=hourly,
        )

    def _coordinate(
        self,
        decision: OptimizationDecision,
        previous_base: float,
        new_base: float,
        current_tilts: Dict[str, float]
    ):
        suggested = decision.allocation.suggested_adjustments
        decision.coordination = self.coordinator.calculate_coordinated_adjustment(
            new_base, current_tilts, suggested, previous_base_bid=previous_base
        )
        if decision.coordination.warning:
            decision.warnings.append(decision.coordination.warning)

        adjusted_base = new_base * (1 + decision.coordination.base_bid_adjustment / 100)
        for placement, tilt in suggested.items():
            check = self.coordinator.check_effective_cpc_safety(adjusted_base, tilt, self.bidding_strategy)
            decision.safety_checks[placement] = check
            if check.warning:
                decision.warnings.append(f"{placement}: {check.warning}")

    def _base_bids(
        self,
        decision: OptimizationDecision,
        targets: Sequence[OptimizationTarget],
        base_bid: Optional[float] = None
    ) -> Tuple[float, float]:
        """
        Base bid before and after this pass's bid changes.
        A given base_bid is the pre-pass bid; it moves by the same ratio
        as the average target bid.
        """
        new_bids = {r.target_id: r.new_bid for r in decision.bid_adjustments}
        before: List[float] = [t.current_bid for t in targets]
        after: List[float] = [new_bids.get(t.id, t.current_bid) for t in targets]

        avg_before = sum(before) / len(before) if before else 0.0
        avg_after = sum(after) / len(after) if after else 0.0
        previous_base = avg_before if base_bid is None else base_bid
        ratio = safe_divide(avg_after, avg_before) if avg_before else 1.0
        return previous_base, previous_base * ratio

    def _window_totals(
        self,
        placement_points: Dict[str, Sequence[PlacementDataPoint]]
    ) -> Dict[str, PlacementAggregate]:
        totals = {}
        for placement, points in placement_points.items():
            window = self.analyzer.select_window(points)
            totals[placement] = PlacementAggregate(
                impressions=sum(p.impressions for p in window),
                clicks=sum(p.clicks for p in window),
                spend=sum(p.spend for p in window),
                sales=sum(p.sales for p in window),
                orders=sum(p.orders for p in window),
                days=len(window),
            )
        return totals

    def _strategy_constraints(self, constraints: OptimizationConstraints) -> OptimizationConstraints:
        strategy_max = max_tilt_for_strategy(self.bidding_strategy)
        if constraints.max_adjustment_per_placement <= strategy_max:
            return constraints
        logger.info(f"Capping placement tilt at {strategy_max:.0f}% for {self.bidding_strategy} bidding")
        return replace(constraints, max_adjustment_per_placement=strategy_max)

    def _print_summary(self):
        """Print pass summary statistics"""
        logger.info("=" * 60)
        logger.info("📊 PASS SUMMARY")
        logger.info("=" * 60)
        logger.info(f"Targets Evaluated:   {self.stats['targets_evaluated']}")
        logger.info(f"Bids Updated:        {self.stats['bids_updated']}")
        logger.info(f"Bids Unchanged:      {self.stats['bids_unchanged']}")
        logger.info(f"Skipped (low data):  {self.stats['skipped_insufficient_data']}")
        logger.info(f"Bids Clamped:        {self.stats['bids_clamped']}")
        logger.info(f"Errors:              {self.stats['errors']}")
        logger.info(f"Total Bid Increase:  ${self.stats['total_bid_increase']:.2f}")
        logger.info(f"Total Bid Decrease:  ${self.stats['total_bid_decrease']:.2f}")
        logger.info(f"Net Change:          ${self.stats['total_bid_increase'] - self.stats['total_bid_decrease']:.2f}")
        logger.info("=" * 60)
