"""
Placement marginal benefit analysis
Estimates what one more point of placement tilt is worth, per placement
"""

from datetime import date, timedelta
from typing import Optional, Sequence, Dict, List

from .config import settings
from .logger import get_logger
from .metrics import acos_risk, safe_divide
from .models import (
    PLACEMENT_TYPES,
    PlacementDataPoint,
    PlacementAggregate,
    MarginalMetrics,
    MarginalBenefitResult,
    OptimalRange,
)

logger = get_logger(__name__)

MAX_TILT = 200.0


class PlacementMarginalBenefitAnalyzer:
    """
    Marginal benefit model for placement tilts.

    The flow sensitivity, retention decay and CPC inflation constants are
    empirical calibration values read from settings.
    """

    def __init__(self, window_days: int = None, min_data_points: int = None):
        self.window_days = settings.analysis_window_days if window_days is None else window_days
        self.min_data_points = settings.min_data_points if min_data_points is None else min_data_points

    def analyze_placement(
        self,
        placement_type: str,
        points: Sequence[PlacementDataPoint],
        current_adjustment: float,
        as_of: Optional[date] = None
    ) -> MarginalBenefitResult:
        """Full analysis for one placement over the rolling window"""
        window = self.select_window(points, as_of)

        if len(window) < self.min_data_points:
            logger.info(
                f"⚠️ {placement_type}: only {len(window)} data points, returning default result"
            )
            return self.default_result(placement_type, current_adjustment, len(window))

        total_spend = sum(p.spend for p in window)
        total_sales = sum(p.sales for p in window)
        total_orders = sum(p.orders for p in window)
        total_clicks = sum(p.clicks for p in window)
        avg_roas = safe_divide(total_sales, total_spend)

        marginal = self.calculate_marginal_metrics(window, current_adjustment)
        elasticity = self.calculate_elasticity(window)
        diminishing_point = self.find_diminishing_point(avg_roas)
        optimal_range = self.calculate_optimal_range(
            marginal.marginal_roas, diminishing_point, current_adjustment
        )
        confidence = self.calculate_analysis_confidence(len(window), total_orders, total_clicks)

        return MarginalBenefitResult(
            placement_type=placement_type,
            current_adjustment=current_adjustment,
            marginal_roas=marginal.marginal_roas,
            marginal_acos=marginal.marginal_acos,
            marginal_sales=marginal.marginal_sales,
            marginal_spend=marginal.marginal_spend,
            elasticity=elasticity,
            diminishing_point=diminishing_point,
            optimal_range=optimal_range,
            confidence=confidence,
            data_points=len(window),
        )

    def analyze_placements(
        self,
        points_by_placement: Dict[str, Sequence[PlacementDataPoint]],
        current_adjustments: Dict[str, float],
        as_of: Optional[date] = None
    ) -> Dict[str, MarginalBenefitResult]:
        results = {}
        for placement_type in PLACEMENT_TYPES:
            results[placement_type] = self.analyze_placement(
                placement_type,
                points_by_placement.get(placement_type, []),
                current_adjustments.get(placement_type, 0),
                as_of,
            )
        return results

    def select_window(
        self,
        points: Sequence[PlacementDataPoint],
        as_of: Optional[date] = None
    ) -> List[PlacementDataPoint]:
        """
        Keep the rolling window, most recent first.
        Undated data is assumed to already be a window in that order.
        """
        points = list(points)
        if not points or any(p.date is None for p in points):
            return points

        as_of = as_of or max(p.date for p in points)
        start = as_of - timedelta(days=self.window_days)
        window = [p for p in points if start < p.date <= as_of]
        return sorted(window, key=lambda p: p.date, reverse=True)

    def calculate_marginal_metrics(
        self,
        points: Sequence[PlacementDataPoint],
        current_adjustment: float
    ) -> MarginalMetrics:
        total_spend = sum(p.spend for p in points)
        total_sales = sum(p.sales for p in points)
        return marginal_from_totals(total_sales, total_spend, len(points), current_adjustment)

    def calculate_elasticity(self, points: Sequence[PlacementDataPoint]) -> float:
        """
        Finite-difference proxy: growth of the recent half's total sales over
        the older half's, divided by an assumed tilt change. Points are most
        recent first; with an odd count the older half holds the extra day.
        """
        if len(points) < 2:
            return 1.0

        mid = len(points) // 2
        recent, older = points[:mid], points[mid:]
        recent_sales = sum(p.sales for p in recent)
        older_sales = sum(p.sales for p in older)

        if older_sales == 0:
            return 1.0
        return (recent_sales - older_sales) / older_sales / settings.assumed_tilt_delta

    def find_diminishing_point(self, avg_roas: float) -> float:
        if avg_roas >= 5:
            return 100.0
        elif avg_roas >= 3:
            return 70.0
        elif avg_roas >= 1.5:
            return 50.0
        else:
            return 30.0

    def calculate_optimal_range(
        self,
        marginal_roas: float,
        diminishing_point: float,
        current_adjustment: float
    ) -> OptimalRange:
        if marginal_roas > 1.5:
            low = current_adjustment - 10
            high = diminishing_point + 20
        elif marginal_roas > 1:
            low = current_adjustment - 20
            high = current_adjustment + 20
        else:
            low = 0
            high = current_adjustment - 10

        high = _clamp_tilt(high)
        low = min(_clamp_tilt(low), high)
        return OptimalRange(min=low, max=high)

    def calculate_analysis_confidence(self, data_points: int, total_orders: float, total_clicks: float) -> float:
        confidence = 0.3

        if data_points >= 30:
            confidence += 0.2
        elif data_points >= 14:
            confidence += 0.1

        if total_orders >= 50:
            confidence += 0.3
        elif total_orders >= 20:
            confidence += 0.2
        elif total_orders >= 10:
            confidence += 0.1

        if total_clicks >= 500:
            confidence += 0.2
        elif total_clicks >= 200:
            confidence += 0.1

        return round(min(1.0, confidence), 2)

    def default_result(self, placement_type: str, current_adjustment: float, data_points: int) -> MarginalBenefitResult:
        return MarginalBenefitResult(
            placement_type=placement_type,
            current_adjustment=current_adjustment,
            marginal_roas=1.0,
            marginal_acos=100.0,
            marginal_sales=0.0,
            marginal_spend=0.0,
            elasticity=1.0,
            diminishing_point=50.0,
            optimal_range=OptimalRange(min=0.0, max=50.0),
            confidence=0.2,
            data_points=data_points,
        )

    def calculate_marginal_benefit_simple(
        self,
        aggregate: PlacementAggregate,
        current_adjustment: float,
        placement_type: str = "top_of_search"
    ) -> MarginalBenefitResult:
        """Same model, driven by period totals instead of daily rows"""
        days = max(1, aggregate.days)
        marginal = marginal_from_totals(aggregate.sales, aggregate.spend, days, current_adjustment)
        diminishing_point = self.find_diminishing_point(safe_divide(aggregate.sales, aggregate.spend))

        return MarginalBenefitResult(
            placement_type=placement_type,
            current_adjustment=current_adjustment,
            marginal_roas=marginal.marginal_roas,
            marginal_acos=marginal.marginal_acos,
            marginal_sales=marginal.marginal_sales,
            marginal_spend=marginal.marginal_spend,
            elasticity=1.0,
            diminishing_point=diminishing_point,
            optimal_range=self.calculate_optimal_range(
                marginal.marginal_roas, diminishing_point, current_adjustment
            ),
            confidence=self.calculate_analysis_confidence(days, aggregate.orders, aggregate.clicks),
            data_points=days,
        )

    def batch_analyze_marginal_benefits_simple(
        self,
        aggregates: Dict[str, PlacementAggregate],
        current_adjustments: Dict[str, float]
    ) -> Dict[str, MarginalBenefitResult]:
        results = {}
        for placement_type, aggregate in aggregates.items():
            results[placement_type] = self.calculate_marginal_benefit_simple(
                aggregate, current_adjustments.get(placement_type, 0), placement_type
            )
        logger.info(f"Analyzed marginal benefit for {len(results)} placements")
        return results


def marginal_from_totals(total_sales: float, total_spend: float, days: int, current_adjustment: float) -> MarginalMetrics:
    """
    Marginal sales/spend of one more tilt point.
    Extra traffic converts worse and costs more per click as tilt grows.
    """
    if total_spend == 0 or days <= 0:
        return MarginalMetrics(marginal_roas=0.0, marginal_acos=0.0, marginal_sales=0.0, marginal_spend=0.0)

    avg_daily_sales = total_sales / days
    avg_daily_spend = total_spend / days

    retention = max(settings.retention_floor, 1 - current_adjustment * settings.retention_decay)
    inflation = 1 + current_adjustment * settings.cpc_inflation

    marginal_sales = avg_daily_sales * settings.flow_sensitivity * retention
    marginal_spend = avg_daily_spend * settings.flow_sensitivity * inflation

    return MarginalMetrics(
        marginal_roas=safe_divide(marginal_sales, marginal_spend),
        marginal_acos=acos_risk(marginal_spend, marginal_sales),
        marginal_sales=marginal_sales,
        marginal_spend=marginal_spend,
    )


def _clamp_tilt(value: float) -> float:
    return max(0.0, min(MAX_TILT, float(value)))
