"""
Unit tests for the marginal benefit report
"""

from datetime import date, timedelta

from bid_engine.models import PlacementDataPoint
from bid_engine.placement_benefit import PlacementMarginalBenefitAnalyzer
from bid_engine.reporting import generate_marginal_benefit_report
from bid_engine.traffic_allocation import TrafficAllocationOptimizer


def points(days, sales):
    return [
        PlacementDataPoint(impressions=400, clicks=20, spend=10, sales=sales, orders=2,
                           date=date(2024, 6, 30) - timedelta(days=i))
        for i in range(days)
    ]


class TestReport:
    def setup_method(self):
        analyzer = PlacementMarginalBenefitAnalyzer()
        self.benefits = analyzer.analyze_placements(
            {"top_of_search": points(30, 60), "product_page": points(30, 30), "rest_of_search": points(3, 10)},
            {"top_of_search": 0, "product_page": 0, "rest_of_search": 0},
        )

    def test_metrics_table(self):
        report = generate_marginal_benefit_report(self.benefits)
        assert report.startswith("# Placement Marginal Benefit Report")
        assert "| Top of search | 0% | 6.00 |" in report
        assert "Product page" in report
        assert "Low confidence for: Rest of search" in report
        assert "## Allocation" not in report

    def test_allocation_section(self):
        allocation = TrafficAllocationOptimizer().optimize_traffic_allocation(
            {"top_of_search": 0, "product_page": 0, "rest_of_search": 0}, self.benefits, "maximize_roas"
        )
        report = generate_marginal_benefit_report(self.benefits, allocation)
        assert "## Allocation (maximize_roas)" in report
        assert "## Expected effect" in report
        assert "Confidence: 20%" in report
