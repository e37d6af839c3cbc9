"""
Market curve model
Estimates how traffic, spend and sales respond to the bid for one target
"""

import math
from typing import Optional, Sequence, List, Dict

import numpy as np

from .config import settings
from .logger import get_logger
from .metrics import calculate_metrics, safe_divide
from .models import OptimizationTarget, BidSample, MarketCurvePoint

logger = get_logger(__name__)


def estimate_traffic_ceiling(
    current_bid: float,
    impressions: float,
    history: Optional[Sequence[BidSample]] = None
) -> float:
    """
    Estimate the impressions available to a target at any bid.

    With enough history, fit impressions = a*ln(bid) + b, project it to
    the ceiling bid and keep the result above the highest observation.
    Without history, assume current impressions are a fixed share
    (capture rate) of the ceiling.
    """
    samples = [s for s in (history or []) if s.bid > 0 and s.impressions >= 0]

    if len(samples) >= settings.min_history_samples:
        log_bids = np.log([s.bid for s in samples])
        observed = np.array([s.impressions for s in samples], dtype=float)
        projected = 0.0

        if np.ptp(log_bids) > 0:
            slope, intercept = np.polyfit(log_bids, observed, 1)
            projected = float(slope * math.log(settings.ceiling_bid) + intercept)

        highest = max(float(observed.max()), float(impressions or 0))
        return max(projected, highest * settings.ceiling_headroom)

    if not impressions or impressions <= 0:
        return 0.0
    return impressions / settings.capture_rate


def calculate_marginal_values(target: OptimizationTarget, increment: float = 0.10) -> Dict[str, float]:
    """Point estimate of what the next bid increment buys"""
    metrics = calculate_metrics(target)
    if target.current_bid <= 0 or target.clicks <= 0:
        return {"estimated_click_increase": 0.0, "marginal_cost": 0.0, "marginal_revenue": 0.0}

    click_increase = target.clicks * settings.click_elasticity * (increment / target.current_bid)
    marginal_cost = click_increase * (metrics.cpc + increment)
    marginal_revenue = click_increase * (metrics.cvr / 100) * metrics.aov

    return {
        "estimated_click_increase": round(click_increase, 2),
        "marginal_cost": round(marginal_cost, 2),
        "marginal_revenue": round(marginal_revenue, 2),
    }


def generate_market_curve(
    target: OptimizationTarget,
    history: Optional[Sequence[BidSample]] = None,
    min_bid: float = None,
    max_bid: float = None,
    steps: int = None
) -> List[MarketCurvePoint]:
    """
    Build steps+1 curve points over [min_bid, max_bid].

    Impressions saturate toward the traffic ceiling as
    ceiling * (1 - exp(-k * bid)), with k chosen so the current bid
    reproduces current impressions. CPC rises with bid, so spend grows
    faster than impressions.
    """
    min_bid = settings.curve_min_bid if min_bid is None else min_bid
    max_bid = settings.curve_max_bid if max_bid is None else max_bid
    steps = settings.curve_steps if steps is None else steps

    if steps < 1:
        raise ValueError("steps must be at least 1")
    if min_bid <= 0 or max_bid <= min_bid:
        raise ValueError(f"Invalid bid range [{min_bid}, {max_bid}]")
    bid_step = (max_bid - min_bid) / steps
    if bid_step < 0.01:
        raise ValueError("Bid range too narrow for the requested number of steps")
    if not 0 < settings.capture_rate < 1:
        raise ValueError("capture_rate must be between 0 and 1")

    ceiling = estimate_traffic_ceiling(target.current_bid, target.impressions, history)

    # Saturation rate calibrated on the current operating point
    capture = safe_divide(target.impressions, ceiling)
    if target.current_bid > 0 and 0 < capture < 1:
        k = -math.log(1 - capture) / target.current_bid
    else:
        k = 0.0

    ctr = safe_divide(target.clicks, target.impressions)
    cvr = safe_divide(target.orders, target.clicks)
    aov = safe_divide(target.sales, target.orders)
    cpc_ratio = safe_divide(safe_divide(target.spend, target.clicks), target.current_bid)
    if cpc_ratio <= 0 or cpc_ratio > 1:
        cpc_ratio = settings.default_cpc_ratio

    points = []
    prev_sales = prev_spend = None

    for i in range(steps + 1):
        bid = round(min_bid + i * bid_step, 2)
        impressions = ceiling * (1 - math.exp(-k * bid))
        clicks = impressions * ctr
        conversions = clicks * cvr
        spend = clicks * bid * cpc_ratio
        sales = conversions * aov

        impressions = round(impressions, 2)
        clicks = round(clicks, 2)
        conversions = round(conversions, 2)
        spend = round(spend, 2)
        sales = round(sales, 2)

        if prev_sales is None:
            marginal_revenue = marginal_cost = 0.0
        else:
            marginal_revenue = round(sales - prev_sales, 2)
            marginal_cost = round(spend - prev_spend, 2)

        points.append(MarketCurvePoint(
            bid_level=bid,
            estimated_impressions=impressions,
            estimated_clicks=clicks,
            estimated_conversions=conversions,
            estimated_spend=spend,
            estimated_sales=sales,
            marginal_revenue=marginal_revenue,
            marginal_cost=marginal_cost,
        ))
        prev_sales, prev_spend = sales, spend

    logger.debug(
        f"Market curve for {target.id}: ceiling={ceiling:.0f}, "
        f"{len(points)} points ${min_bid:.2f}-${max_bid:.2f}"
    )
    return points
