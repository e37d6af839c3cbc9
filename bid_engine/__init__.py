# Re-export engine modules for package usage
from .config import settings
from .logger import get_logger
from .metrics import calculate_metrics
from .market_curve import generate_market_curve, estimate_traffic_ceiling
from .bid_search import find_optimal_bid
from .bid_policy import BidAdjustmentPolicy, calculate_placement_adjustments
from .placement_benefit import PlacementMarginalBenefitAnalyzer
from .traffic_allocation import TrafficAllocationOptimizer
from .coordination import PlacementBidCoordinator, BidCoordinator, max_tilt_for_strategy
from .intraday import IntradayAdjustmentCalculator
from .profit_curve import build_profit_model
from .reporting import generate_marginal_benefit_report

__all__ = [
    "settings",
    "get_logger",
    "calculate_metrics",
    "generate_market_curve",
    "estimate_traffic_ceiling",
    "find_optimal_bid",
    "BidAdjustmentPolicy",
    "calculate_placement_adjustments",
    "PlacementMarginalBenefitAnalyzer",
    "TrafficAllocationOptimizer",
    "PlacementBidCoordinator",
    "BidCoordinator",
    "max_tilt_for_strategy",
    "IntradayAdjustmentCalculator",
    "build_profit_model",
    "generate_marginal_benefit_report",
]
