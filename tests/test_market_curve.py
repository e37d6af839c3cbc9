"""
Unit tests for the market curve model
"""

import pytest
from bid_engine.market_curve import (
    estimate_traffic_ceiling,
    generate_market_curve,
    calculate_marginal_values,
)
from bid_engine.models import OptimizationTarget, BidSample


class TestMarketCurve:
    def setup_method(self):
        self.target = OptimizationTarget(
            id="kw1", current_bid=1.0, impressions=1000, clicks=50, spend=35, sales=200, orders=10
        )

    def test_ceiling_from_capture_rate(self):
        """Without history, impressions are 60% of the ceiling"""
        assert estimate_traffic_ceiling(1.0, 1000) == pytest.approx(1000 / 0.6)
        assert estimate_traffic_ceiling(1.0, 0) == 0

    def test_ceiling_from_history(self):
        """History extrapolates above the highest observation"""
        history = [BidSample(0.5, 400), BidSample(1.0, 1000), BidSample(1.5, 1300)]
        ceiling = estimate_traffic_ceiling(1.0, 1000, history)
        assert ceiling >= 1300 * 1.5

    def test_short_history_falls_back(self):
        """Too few samples uses the capture rate"""
        history = [BidSample(0.5, 400), BidSample(1.0, 1000)]
        assert estimate_traffic_ceiling(1.0, 1000, history) == pytest.approx(1000 / 0.6)

    def test_curve_shape(self):
        """Default curve has 21 points with increasing bids and non-decreasing spend"""
        curve = generate_market_curve(self.target)
        assert len(curve) == 21
        for prev, point in zip(curve, curve[1:]):
            assert point.bid_level > prev.bid_level
            assert point.estimated_spend >= prev.estimated_spend
            assert point.estimated_impressions >= prev.estimated_impressions
        assert curve[0].bid_level == pytest.approx(0.10)
        assert curve[-1].bid_level == pytest.approx(5.00)

    def test_curve_monotone_with_history(self):
        """Monotonicity holds with a history-based ceiling too"""
        history = [BidSample(0.5, 400), BidSample(1.0, 1000), BidSample(1.5, 1300)]
        curve = generate_market_curve(self.target, history, steps=40)
        for prev, point in zip(curve, curve[1:]):
            assert point.bid_level > prev.bid_level
            assert point.estimated_spend >= prev.estimated_spend

    def test_marginals_are_adjacent_differences(self):
        """First point has zero marginals, later ones are step differences"""
        curve = generate_market_curve(self.target)
        assert curve[0].marginal_revenue == 0
        assert curve[0].marginal_cost == 0
        for prev, point in zip(curve, curve[1:]):
            assert point.marginal_revenue == pytest.approx(point.estimated_sales - prev.estimated_sales, abs=0.011)
            assert point.marginal_cost == pytest.approx(point.estimated_spend - prev.estimated_spend, abs=0.011)

    def test_current_bid_reproduces_current_impressions(self):
        """The saturation curve is calibrated on the current operating point"""
        curve = generate_market_curve(self.target, min_bid=0.5, max_bid=1.5, steps=10)
        at_current = [p for p in curve if p.bid_level == pytest.approx(1.0)][0]
        assert at_current.estimated_impressions == pytest.approx(1000, abs=0.5)
        assert at_current.estimated_clicks == pytest.approx(50, abs=0.05)

    def test_spend_grows_faster_than_impressions(self):
        """Higher bids also raise CPC"""
        curve = generate_market_curve(self.target)
        low, high = curve[1], curve[-1]
        impression_growth = high.estimated_impressions / low.estimated_impressions
        spend_growth = high.estimated_spend / low.estimated_spend
        assert spend_growth > impression_growth

    def test_zero_traffic_target(self):
        """No impressions yields a flat zero curve"""
        target = OptimizationTarget(id="kw2", current_bid=1.0)
        curve = generate_market_curve(target)
        assert all(p.estimated_spend == 0 for p in curve)
        assert all(b.bid_level > a.bid_level for a, b in zip(curve, curve[1:]))

    def test_invalid_range(self):
        """Bad ranges are programming errors"""
        with pytest.raises(ValueError):
            generate_market_curve(self.target, min_bid=2.0, max_bid=1.0)
        with pytest.raises(ValueError):
            generate_market_curve(self.target, steps=0)
        with pytest.raises(ValueError):
            generate_market_curve(self.target, min_bid=1.0, max_bid=1.05, steps=20)

    def test_marginal_values(self):
        """Point estimate of one bid increment"""
        values = calculate_marginal_values(self.target, increment=0.10)
        assert values["estimated_click_increase"] == pytest.approx(4.0)
        assert values["marginal_cost"] == pytest.approx(3.2)
        assert values["marginal_revenue"] == pytest.approx(16.0)
