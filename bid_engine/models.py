"""
Typed inputs and outputs of the optimization engine
"""

from dataclasses import dataclass, field
from datetime import date
from typing import Optional, Dict, List

from .config import settings

PLACEMENT_TYPES = ("top_of_search", "product_page", "rest_of_search")
TARGET_TYPES = ("keyword", "asin")
BID_GOALS = ("maximize_sales", "target_acos", "target_roas", "daily_spend_limit", "daily_cost")
ALLOCATION_GOALS = ("maximize_roas", "minimize_acos", "maximize_sales", "balanced")
BIDDING_STRATEGIES = ("fixed", "up_and_down", "down_only")


@dataclass(frozen=True)
class OptimizationTarget:
    """Snapshot of one keyword or product target for a single pass"""
    id: str
    current_bid: float
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    sales: float = 0.0
    orders: int = 0
    type: str = "keyword"
    name: Optional[str] = None

    def __post_init__(self):
        if self.type not in TARGET_TYPES:
            raise ValueError(f"Unknown target type: {self.type}")


@dataclass(frozen=True)
class DerivedMetrics:
    acos: float
    roas: float
    ctr: float
    cvr: float
    cpc: float
    aov: float


@dataclass(frozen=True)
class BidSample:
    bid: float
    impressions: float


@dataclass(frozen=True)
class MarketCurvePoint:
    bid_level: float
    estimated_impressions: float
    estimated_clicks: float
    estimated_conversions: float
    estimated_spend: float
    estimated_sales: float
    marginal_revenue: float = 0.0
    marginal_cost: float = 0.0


@dataclass(frozen=True)
class PerformanceGroupConfig:
    optimization_goal: str = "maximize_sales"
    target_acos: Optional[float] = None
    target_roas: Optional[float] = None
    daily_spend_limit: Optional[float] = None
    daily_cost_target: Optional[float] = None

    def __post_init__(self):
        if self.optimization_goal not in BID_GOALS:
            raise ValueError(f"Unknown optimization goal: {self.optimization_goal}")


@dataclass
class BidAdjustmentResult:
    """
    Bid recommendation for one target.
    raw_bid is what the curve search chose; new_bid is what survives the clamps.
    """
    target_id: str
    current_bid: float
    raw_bid: float
    new_bid: float
    bid_change_percent: float
    action_type: str
    reason: str
    clamps: List[str] = field(default_factory=list)
    components: Dict[str, float] = field(default_factory=dict)

    @property
    def was_clamped(self) -> bool:
        return bool(self.clamps)


@dataclass(frozen=True)
class PlacementDataPoint:
    """One day of performance for one placement"""
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    sales: float = 0.0
    orders: int = 0
    date: Optional[date] = None


@dataclass(frozen=True)
class PlacementAggregate:
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    sales: float = 0.0
    orders: int = 0
    days: int = 30


@dataclass(frozen=True)
class MarginalMetrics:
    marginal_roas: float
    marginal_acos: float
    marginal_sales: float
    marginal_spend: float


@dataclass(frozen=True)
class OptimalRange:
    min: float
    max: float


@dataclass(frozen=True)
class MarginalBenefitResult:
    placement_type: str
    current_adjustment: float
    marginal_roas: float
    marginal_acos: float
    marginal_sales: float
    marginal_spend: float
    elasticity: float
    diminishing_point: float
    optimal_range: OptimalRange
    confidence: float
    data_points: int


@dataclass(frozen=True)
class OptimizationConstraints:
    """Every field is optional; see resolve_constraints"""
    max_total_adjustment: Optional[float] = None
    min_adjustment_per_placement: Optional[float] = None
    max_adjustment_per_placement: Optional[float] = None
    max_spend_increase: Optional[float] = None
    target_acos: Optional[float] = None
    target_roas: Optional[float] = None


def resolve_constraints(constraints: Optional[OptimizationConstraints] = None) -> OptimizationConstraints:
    """Fill unset constraint fields from settings"""
    constraints = constraints or OptimizationConstraints()
    defaults = {
        "max_total_adjustment": settings.max_total_adjustment,
        "min_adjustment_per_placement": settings.min_adjustment_per_placement,
        "max_adjustment_per_placement": settings.max_adjustment_per_placement,
        "max_spend_increase": settings.max_spend_increase,
        "target_acos": settings.target_acos,
        "target_roas": settings.target_roas,
    }
    resolved = {
        name: default if getattr(constraints, name) is None else getattr(constraints, name)
        for name, default in defaults.items()
    }
    if resolved["min_adjustment_per_placement"] > resolved["max_adjustment_per_placement"]:
        raise ValueError("min_adjustment_per_placement exceeds max_adjustment_per_placement")
    return OptimizationConstraints(**resolved)


@dataclass(frozen=True)
class AllocationConfig:
    step_size: float = field(default_factory=lambda: settings.allocation_step)
    max_iterations: int = field(default_factory=lambda: settings.allocation_max_iterations)
    transfer_score_ratio: float = field(default_factory=lambda: settings.transfer_score_ratio)

    def __post_init__(self):
        if self.step_size <= 0:
            raise ValueError("step_size must be positive")
        if self.max_iterations < 0:
            raise ValueError("max_iterations must not be negative")


@dataclass(frozen=True)
class PlacementAllocation:
    placement_type: str
    current_adjustment: float
    suggested_adjustment: float
    adjustment_delta: float
    expected_sales_change: float
    expected_spend_change: float
    marginal_benefit: MarginalBenefitResult
    allocation_reason: str


@dataclass(frozen=True)
class AllocationImprovement:
    sales_change: float
    sales_change_percent: float
    roas_change: float
    acos_change: float


@dataclass
class TrafficAllocationResult:
    allocations: List[PlacementAllocation]
    total_expected_sales: float
    total_expected_spend: float
    expected_roas: float
    expected_acos: float
    improvement: AllocationImprovement
    optimization_goal: str
    confidence: float
    warnings: List[str] = field(default_factory=list)

    @property
    def suggested_adjustments(self) -> Dict[str, float]:
        return {a.placement_type: a.suggested_adjustment for a in self.allocations}


@dataclass(frozen=True)
class DataConfidence:
    """How far a placement's recent volume can be trusted to move its tilt"""
    confidence: float
    is_reliable: bool
    reason: str


@dataclass(frozen=True)
class TiltChange:
    delta: float
    final_adjustment: float
    reason: str
    was_limited: bool


@dataclass
class SimpleAllocationResult:
    optimized_adjustments: Dict[str, float]
    expected_sales_increase: float
    expected_spend_change: float
    expected_roas_change: float
    confidence: float


@dataclass(frozen=True)
class NormalizedBid:
    original_bid: float
    effective_bid: float
    normalized_bid: float
    placement_multiplier: float


@dataclass
class CoordinatedAdjustment:
    base_bid_adjustment: float
    placement_adjustments: Dict[str, float]
    total_effective_cpc_change: float
    driving_placement: Optional[str] = None
    warning: Optional[str] = None


@dataclass(frozen=True)
class CpcSafetyCheck:
    effective_cpc: float
    max_possible_cpc: float
    is_safe: bool
    warning: Optional[str] = None


@dataclass(frozen=True)
class HourlyDataPoint:
    hour: int
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    sales: float = 0.0
    orders: int = 0


@dataclass(frozen=True)
class BidProposal:
    """A bid opinion from one optimization source"""
    source: str
    suggested_bid: Optional[float] = None
    suggested_multiplier: Optional[float] = None
    confidence: float = 1.0
    reason: str = ""


@dataclass
class CoordinatedBid:
    original_bid: float
    final_bid: float
    theoretical_max_cpc: float
    circuit_breaker_triggered: bool
    contributions: Dict[str, float] = field(default_factory=dict)
    warnings: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class PlacementPerformance:
    """Period totals for one named placement"""
    placement: str
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    sales: float = 0.0
    orders: int = 0


@dataclass(frozen=True)
class BidPerformancePoint:
    """Observed performance of a target at one bid level"""
    bid: float
    impressions: int = 0
    clicks: int = 0
    spend: float = 0.0
    sales: float = 0.0
    orders: int = 0


@dataclass(frozen=True)
class ImpressionCurve:
    a: float = 1000.0
    b: float = 0.1
    c: float = 100.0
    r2: float = 0.0


@dataclass(frozen=True)
class CtrCurve:
    base_ctr: float = 0.01
    position_bonus: float = 0.5
    top_search_bonus: float = 0.3


@dataclass(frozen=True)
class ConversionParams:
    cvr: float = 0.05
    aov: float = 30.0
    conversion_delay_days: int = 7


@dataclass
class ProfitOptimum:
    optimal_bid: float
    max_profit: float
    profit_margin: float
    break_even_cpc: float
    profit_curve: List[Dict[str, float]] = field(default_factory=list)


@dataclass
class ProfitCurveModel:
    impression_curve: ImpressionCurve
    ctr_curve: CtrCurve
    conversion: ConversionParams
    optimum: ProfitOptimum
    data_points: int
    confidence: float


@dataclass
class OptimizationDecision:
    """Everything one optimization pass recommends, for the apply layer to act on"""
    bid_adjustments: List[BidAdjustmentResult] = field(default_factory=list)
    marginal_benefits: Dict[str, MarginalBenefitResult] = field(default_factory=dict)
    allocation: Optional[TrafficAllocationResult] = None
    coordination: Optional[CoordinatedAdjustment] = None
    safety_checks: Dict[str, CpcSafetyCheck] = field(default_factory=dict)
    intraday_adjustment: int = 0
    warnings: List[str] = field(default_factory=list)
