"""
Unit tests for derived metrics
"""

import pytest
from bid_engine.metrics import calculate_metrics, acos_risk, safe_divide, ACOS_SENTINEL
from bid_engine.models import OptimizationTarget


class TestMetrics:
    def test_zero_spend_gives_zero_acos_and_roas(self):
        """Targets without spend never divide by zero"""
        target = OptimizationTarget(id="kw", current_bid=1.0, impressions=500, clicks=0, spend=0, sales=0, orders=0)
        metrics = calculate_metrics(target)
        assert metrics.acos == 0
        assert metrics.roas == 0
        assert metrics.cpc == 0
        assert metrics.cvr == 0

        with_sales = OptimizationTarget(id="kw", current_bid=1.0, spend=0, sales=50, orders=1)
        assert calculate_metrics(with_sales).acos == 0
        assert calculate_metrics(with_sales).roas == 0

    def test_metric_formulas(self):
        """Ratios match their definitions"""
        target = OptimizationTarget(id="kw", current_bid=1.0, impressions=1000, clicks=50, spend=25, sales=100, orders=5)
        metrics = calculate_metrics(target)
        assert metrics.acos == pytest.approx(25.0)
        assert metrics.roas == pytest.approx(4.0)
        assert metrics.ctr == pytest.approx(5.0)
        assert metrics.cvr == pytest.approx(10.0)
        assert metrics.cpc == pytest.approx(0.5)
        assert metrics.aov == pytest.approx(20.0)

    def test_empty_counters(self):
        """All-zero counters produce all-zero metrics"""
        metrics = calculate_metrics(OptimizationTarget(id="kw", current_bid=0.5))
        assert (metrics.acos, metrics.roas, metrics.ctr, metrics.cvr, metrics.cpc, metrics.aov) == (0, 0, 0, 0, 0, 0)

    def test_acos_risk_sentinel(self):
        """Cost without revenue is the worst possible risk score"""
        assert acos_risk(10, 0) == ACOS_SENTINEL
        assert acos_risk(0, 0) == 0
        assert acos_risk(10, 40) == pytest.approx(25.0)

    def test_safe_divide(self):
        assert safe_divide(5, 0) == 0
        assert safe_divide(5, 2) == 2.5
