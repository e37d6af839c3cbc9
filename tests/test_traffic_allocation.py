"""
Unit tests for traffic allocation across placements
"""

import pytest
from bid_engine.models import (
    AllocationConfig,
    DataConfidence,
    MarginalBenefitResult,
    OptimalRange,
    OptimizationConstraints,
    PlacementAggregate,
)
from bid_engine.traffic_allocation import TrafficAllocationOptimizer, calculate_data_confidence


def benefit(placement, roas, acos, sales, spend, elasticity, dp, range_max, confidence, current=0):
    return MarginalBenefitResult(
        placement_type=placement,
        current_adjustment=current,
        marginal_roas=roas,
        marginal_acos=acos,
        marginal_sales=sales,
        marginal_spend=spend,
        elasticity=elasticity,
        diminishing_point=dp,
        optimal_range=OptimalRange(min=0, max=range_max),
        confidence=confidence,
        data_points=30,
    )


ZERO = {"top_of_search": 0, "product_page": 0, "rest_of_search": 0}


class TestTrafficAllocation:
    def setup_method(self):
        self.optimizer = TrafficAllocationOptimizer(
            AllocationConfig(step_size=5, max_iterations=20, transfer_score_ratio=0.5)
        )
        self.benefits = {
            "top_of_search": benefit("top_of_search", 4.0, 25, 1.0, 0.25, 1.5, 80, 110, 0.8),
            "product_page": benefit("product_page", 2.5, 40, 0.6, 0.24, 1.0, 60, 90, 0.7),
            "rest_of_search": benefit("rest_of_search", 1.5, 66.7, 0.3, 0.2, 0.5, 40, 70, 0.6),
        }

    def test_scores_by_goal(self):
        top = self.benefits["top_of_search"]
        assert self.optimizer.score_placement(top, "maximize_roas") == pytest.approx(3.2)
        assert self.optimizer.score_placement(top, "minimize_acos") == pytest.approx(0.6)
        assert self.optimizer.score_placement(top, "maximize_sales") == pytest.approx(0.8)
        assert self.optimizer.score_placement(top, "balanced") == pytest.approx(2.4)
        with pytest.raises(ValueError):
            self.optimizer.score_placement(top, "maximize_fun")

    def test_greedy_climb_stops_at_diminishing_points(self):
        """Each placement climbs until diminishing point + 20"""
        result = self.optimizer.optimize_traffic_allocation(ZERO, self.benefits, "balanced")
        assert result.suggested_adjustments == {
            "top_of_search": 100,
            "product_page": 80,
            "rest_of_search": 60,
        }
        assert result.confidence == 0.6
        assert result.optimization_goal == "balanced"

    def test_step_and_iterations_are_configurable(self):
        optimizer = TrafficAllocationOptimizer(AllocationConfig(step_size=10, max_iterations=2))
        result = optimizer.optimize_traffic_allocation(ZERO, self.benefits, "balanced")
        assert result.suggested_adjustments == {"top_of_search": 20, "product_page": 20, "rest_of_search": 20}

        frozen = TrafficAllocationOptimizer(AllocationConfig(step_size=5, max_iterations=0))
        assert frozen.optimize_traffic_allocation(ZERO, self.benefits).suggested_adjustments == ZERO

    def test_total_budget_is_respected(self):
        """Tight total budget limits the climb"""
        constraints = OptimizationConstraints(max_total_adjustment=50)
        result = self.optimizer.optimize_traffic_allocation(ZERO, self.benefits, "balanced", constraints)
        assert sum(result.suggested_adjustments.values()) <= 50
        assert result.suggested_adjustments["top_of_search"] >= result.suggested_adjustments["rest_of_search"]

    def test_weak_placement_only_grows_for_sales(self):
        """Marginal ROAS at or below 1 blocks increases unless maximizing sales"""
        benefits = dict(self.benefits)
        benefits["rest_of_search"] = benefit("rest_of_search", 0.8, 125, 0.3, 0.375, 0.5, 40, 70, 0.6)

        balanced = self.optimizer.optimize_traffic_allocation(ZERO, benefits, "balanced")
        assert balanced.suggested_adjustments["rest_of_search"] == 0

        sales = self.optimizer.optimize_traffic_allocation(ZERO, benefits, "maximize_sales")
        assert sales.suggested_adjustments["rest_of_search"] > 0

    def test_transfer_from_weakest_placement(self):
        """When nothing can grow, tilt moves from the weakest to the strongest"""
        benefits = {
            "top_of_search": benefit("top_of_search", 4.0, 25, 1.0, 0.25, 1.0, 30, 200, 0.8),
            "rest_of_search": benefit("rest_of_search", 0.8, 125, 0.3, 0.375, 1.0, 30, 50, 0.6),
        }
        current = {"top_of_search": 50, "rest_of_search": 20}
        result = self.optimizer.optimize_traffic_allocation(current, benefits, "balanced")
        adjustments = result.suggested_adjustments

        assert adjustments["top_of_search"] > 50
        assert adjustments["rest_of_search"] < 20
        assert adjustments["rest_of_search"] >= -50
        assert sum(adjustments.values()) == pytest.approx(70)

        reasons = {a.placement_type: a.allocation_reason for a in result.allocations}
        assert reasons["top_of_search"].startswith("marginal ROAS 4.00")
        assert reasons["rest_of_search"] == "transferring budget to a more efficient placement"

    def test_expected_results(self):
        """Expected totals build on current performance"""
        performance = {
            "top_of_search": PlacementAggregate(spend=100, sales=400),
            "product_page": PlacementAggregate(spend=50, sales=100),
            "rest_of_search": PlacementAggregate(spend=50, sales=100),
        }
        result = self.optimizer.optimize_traffic_allocation(
            ZERO, self.benefits, "balanced", current_performance=performance
        )
        assert result.total_expected_sales == pytest.approx(766.0)
        assert result.total_expected_spend == pytest.approx(256.2)
        assert result.expected_roas == pytest.approx(2.99)
        assert result.improvement.sales_change == pytest.approx(166.0)
        assert result.improvement.sales_change_percent == pytest.approx(27.67)
        assert result.improvement.roas_change == pytest.approx(-0.01)
        assert any("ACoS" in w for w in result.warnings)
        assert any("ROAS" in w for w in result.warnings)
        assert not any("spend increase" in w for w in result.warnings)

    def test_keep_reason_when_unchanged(self):
        """Placements already at their limits keep their tilt"""
        optimizer = TrafficAllocationOptimizer(AllocationConfig(transfer_score_ratio=0.0))
        result = optimizer.optimize_traffic_allocation(
            {"top_of_search": 100, "product_page": 80, "rest_of_search": 60}, self.benefits
        )
        assert all(a.adjustment_delta == 0 for a in result.allocations)
        assert all(a.allocation_reason.startswith("keep current tilt") for a in result.allocations)

    def test_reduce_reason_past_diminishing_point(self):
        b = benefit("product_page", 1.2, 83, 0.5, 0.4, 1.0, 50, 70, 0.7)
        assert self.optimizer.generate_allocation_reason(b, 120, 100) == "past diminishing point 50%, reduce tilt"
        low = benefit("product_page", 0.4, 250, 0.5, 1.25, 1.0, 50, 70, 0.7)
        assert self.optimizer.generate_allocation_reason(low, 40, 20).startswith("low marginal ROAS 0.40")

    def test_unknown_goal(self):
        with pytest.raises(ValueError):
            self.optimizer.optimize_traffic_allocation(ZERO, self.benefits, "maximize_fun")


class TestSimpleAllocation:
    def setup_method(self):
        self.optimizer = TrafficAllocationOptimizer()
        self.benefits = {
            "top_of_search": benefit("top_of_search", 4.0, 25, 100, 25, 1.5, 80, 110, 0.8),
            "product_page": benefit("product_page", 2.5, 40, 60, 24, 1.0, 60, 90, 0.7),
            "rest_of_search": benefit("rest_of_search", 1.5, 66.7, 30, 20, 0.5, 40, 70, 0.6),
        }

    @pytest.mark.parametrize("goal", ["maximize_roas", "minimize_acos", "maximize_sales", "balanced"])
    @pytest.mark.parametrize("start", [0, 50, 150, 200])
    def test_total_never_exceeds_budget(self, goal, start):
        current = {p: start for p in self.benefits}
        result = self.optimizer.optimize_traffic_allocation_simple(self.benefits, current, goal)
        assert sum(result.optimized_adjustments.values()) <= 400

    def test_result_fields(self):
        result = self.optimizer.optimize_traffic_allocation_simple(self.benefits, ZERO, "balanced")
        assert set(result.optimized_adjustments) == set(self.benefits)
        assert result.expected_sales_increase > 0
        assert result.expected_spend_change > 0
        assert result.expected_roas_change == pytest.approx(
            result.expected_sales_increase / result.expected_spend_change, abs=0.01
        )
        assert result.confidence == 0.6

    def test_custom_budget(self):
        constraints = OptimizationConstraints(max_total_adjustment=30)
        result = self.optimizer.optimize_traffic_allocation_simple(self.benefits, ZERO, "maximize_sales", constraints)
        assert sum(result.optimized_adjustments.values()) <= 30


class TestTiltChangeLimits:
    def setup_method(self):
        self.optimizer = TrafficAllocationOptimizer()
        self.benefits = {
            "top_of_search": benefit("top_of_search", 4.0, 25, 1.0, 0.25, 1.5, 80, 110, 0.8),
            "product_page": benefit("product_page", 2.5, 40, 0.6, 0.24, 1.0, 60, 90, 0.7),
            "rest_of_search": benefit("rest_of_search", 1.5, 66.7, 0.3, 0.2, 0.5, 40, 70, 0.6),
        }
        self.reliable = calculate_data_confidence(clicks=300, orders=25, spend=150)

    def test_data_confidence_tiers(self):
        assert calculate_data_confidence(300, 25, 150) == DataConfidence(1.0, True, "ample data (20+ orders, 200+ clicks)")
        assert calculate_data_confidence(120, 12, 60).confidence == 0.8
        assert calculate_data_confidence(60, 6, 30).confidence == 0.6
        assert calculate_data_confidence(60, 6, 30).is_reliable
        assert calculate_data_confidence(30, 3, 10).confidence == 0.4
        assert not calculate_data_confidence(30, 3, 10).is_reliable
        assert calculate_data_confidence(0, 0, 0).confidence == 0.2

    def test_unreliable_data_keeps_tilt(self):
        change = self.optimizer.limit_tilt_change(30, 80, calculate_data_confidence(10, 1, 5))
        assert change.final_adjustment == 30
        assert change.delta == 0
        assert change.was_limited

    def test_step_by_confidence(self):
        """20/10/5 point moves, or a quarter of the current tilt when that is larger"""
        assert self.optimizer.limit_tilt_change(0, 125, self.reliable).final_adjustment == 20
        assert self.optimizer.limit_tilt_change(0, -40, calculate_data_confidence(60, 6, 30)).final_adjustment == -10
        assert self.optimizer.limit_tilt_change(100, 160, calculate_data_confidence(120, 12, 60)).final_adjustment == 125

        small = self.optimizer.limit_tilt_change(10, 15, self.reliable)
        assert small.final_adjustment == 15
        assert not small.was_limited

    def test_strategy_and_floor_bounds(self):
        change = self.optimizer.limit_tilt_change(90, 150, self.reliable, "up_and_down")
        assert change.final_adjustment == 100
        assert change.was_limited
        assert self.optimizer.limit_tilt_change(-45, -60, self.reliable).final_adjustment == -50

    def test_apply_limits_to_allocation(self):
        """A 0 to 100 climb in one pass is cut down to what each placement's data supports"""
        allocation = self.optimizer.optimize_traffic_allocation(ZERO, self.benefits, "balanced")
        assert allocation.suggested_adjustments["top_of_search"] == 100

        performance = {
            "top_of_search": PlacementAggregate(impressions=9000, clicks=300, spend=150, sales=600, orders=25),
            "product_page": PlacementAggregate(impressions=3000, clicks=60, spend=30, sales=120, orders=6),
            "rest_of_search": PlacementAggregate(impressions=800, clicks=10, spend=5, sales=10, orders=1),
        }
        limited = self.optimizer.apply_tilt_change_limits(allocation, performance)
        assert limited.suggested_adjustments == {"top_of_search": 20, "product_page": 10, "rest_of_search": 0}
        assert limited.optimization_goal == "balanced"

        by_placement = {a.placement_type: a for a in limited.allocations}
        assert by_placement["top_of_search"].expected_sales_change == pytest.approx(20.0)
        assert by_placement["product_page"].adjustment_delta == 10
        assert "confidence 100%" in by_placement["top_of_search"].allocation_reason
        assert "tilt unchanged" in by_placement["rest_of_search"].allocation_reason
        assert limited.total_expected_sales == pytest.approx(26.0)

    def test_missing_performance_keeps_tilts(self):
        allocation = self.optimizer.optimize_traffic_allocation(ZERO, self.benefits, "balanced")
        limited = self.optimizer.apply_tilt_change_limits(allocation, {})
        assert limited.suggested_adjustments == ZERO
