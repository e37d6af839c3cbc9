"""
Profit curve model
Fits impressions and CTR against CPC and finds the profit-maximizing bid
"""

import math
from typing import Callable, Sequence, List, Dict

import numpy as np

from .logger import get_logger
from .metrics import safe_divide
from .models import (
    BidPerformancePoint,
    ConversionParams,
    CtrCurve,
    ImpressionCurve,
    ProfitCurveModel,
    ProfitOptimum,
)

logger = get_logger(__name__)

MIN_CPC = 0.02
MAX_CPC = 10.0
SCAN_STEP = 0.05


def build_impression_curve(points: Sequence[BidPerformancePoint]) -> ImpressionCurve:
    """Fit impressions = a * ln(cpc + 0.01) + c"""
    valid = [p for p in points if p.impressions > 0 and p.bid > 0]
    if len(valid) < 5:
        return ImpressionCurve()

    x = np.log(np.array([p.bid for p in valid]) + 0.01)
    y = np.array([p.impressions for p in valid], dtype=float)
    if np.ptp(x) == 0:
        return ImpressionCurve()

    a, c = np.polyfit(x, y, 1)
    ss_total = float(((y - y.mean()) ** 2).sum())
    ss_residual = float(((y - (a * x + c)) ** 2).sum())
    r2 = 1 - ss_residual / ss_total if ss_total > 0 else 0.0

    return ImpressionCurve(
        a=max(float(a), 0.0),
        b=0.01,
        c=max(float(c), 0.0),
        r2=max(0.0, min(1.0, r2)),
    )


def build_ctr_curve(points: Sequence[BidPerformancePoint]) -> CtrCurve:
    """Higher bids win better positions; compare CTR of the top and bottom half by bid"""
    valid = [p for p in points if p.clicks > 0 and p.impressions > 0]
    if len(valid) < 3:
        return CtrCurve()

    base_ctr = sum(p.clicks for p in valid) / sum(p.impressions for p in valid)

    ranked = sorted(valid, key=lambda p: p.bid, reverse=True)
    half = math.ceil(len(ranked) / 2)
    top_ctr = sum(p.clicks / p.impressions for p in ranked[:half]) / half
    bottom_ctr = sum(p.clicks / p.impressions for p in ranked[half:]) / (len(ranked) - half)

    position_bonus = (top_ctr - bottom_ctr) / bottom_ctr if bottom_ctr > 0 else 0.5
    position_bonus = max(0.0, min(2.0, position_bonus))

    return CtrCurve(
        base_ctr=base_ctr,
        position_bonus=position_bonus,
        top_search_bonus=position_bonus * 0.6,
    )


def calculate_conversion_params(points: Sequence[BidPerformancePoint]) -> ConversionParams:
    valid = [p for p in points if p.clicks > 0]
    if len(valid) < 3:
        return ConversionParams()

    total_clicks = sum(p.clicks for p in valid)
    total_orders = sum(p.orders for p in valid)
    total_sales = sum(p.sales for p in valid)

    return ConversionParams(
        cvr=total_orders / max(total_clicks, 1),
        aov=total_sales / total_orders if total_orders > 0 else 30.0,
    )


def calculate_impressions(cpc: float, curve: ImpressionCurve) -> float:
    return max(0.0, curve.a * math.log(cpc + curve.b) + curve.c)


def calculate_ctr(cpc: float, curve: CtrCurve, max_cpc: float = 5.0) -> float:
    position_score = min(cpc / max_cpc, 1.0)
    return curve.base_ctr * (1 + curve.position_bonus * position_score)


def calculate_profit(
    cpc: float,
    impression_curve: ImpressionCurve,
    ctr_curve: CtrCurve,
    conversion: ConversionParams
) -> float:
    """Profit = clicks * (cvr * aov - cpc)"""
    clicks = calculate_impressions(cpc, impression_curve) * calculate_ctr(cpc, ctr_curve)
    return clicks * (conversion.cvr * conversion.aov - cpc)


def golden_section_search(
    f: Callable[[float], float],
    low: float,
    high: float,
    tolerance: float = 0.001,
    max_iterations: int = 100
) -> float:
    """Maximize a unimodal function on [low, high]"""
    resphi = 2 - (1 + math.sqrt(5)) / 2

    x1 = low + resphi * (high - low)
    x2 = high - resphi * (high - low)
    f1, f2 = f(x1), f(x2)

    iterations = 0
    while abs(high - low) > tolerance and iterations < max_iterations:
        if f1 > f2:
            high, x2, f2 = x2, x1, f1
            x1 = low + resphi * (high - low)
            f1 = f(x1)
        else:
            low, x1, f1 = x1, x2, f2
            x2 = high - resphi * (high - low)
            f2 = f(x2)
        iterations += 1

    return (low + high) / 2


def calculate_optimal_profit_bid(
    impression_curve: ImpressionCurve,
    ctr_curve: CtrCurve,
    conversion: ConversionParams
) -> ProfitOptimum:
    """
    Coarse scan in 5 cent steps, then golden-section refinement around the
    best scan point. The search stops at 1.5x break-even CPC.
    """
    break_even = conversion.cvr * conversion.aov
    max_cpc = min(break_even * 1.5, MAX_CPC)

    def profit(cpc):
        return calculate_profit(cpc, impression_curve, ctr_curve, conversion)

    if max_cpc <= MIN_CPC:
        return ProfitOptimum(
            optimal_bid=MIN_CPC,
            max_profit=round(profit(MIN_CPC), 2),
            profit_margin=0.0,
            break_even_cpc=round(break_even, 2),
        )

    scan = np.arange(MIN_CPC, max_cpc + 1e-9, SCAN_STEP)
    profits = [profit(float(cpc)) for cpc in scan]
    best = float(scan[int(np.argmax(profits))])

    optimal = golden_section_search(
        profit,
        max(MIN_CPC, best - SCAN_STEP * 2),
        min(max_cpc, best + SCAN_STEP * 2),
    )

    curve = [
        {"cpc": round(float(cpc), 2), "profit": round(profit(float(cpc)), 2)}
        for cpc in np.arange(MIN_CPC, max_cpc + 1e-9, 0.1)
    ]

    return ProfitOptimum(
        optimal_bid=round(optimal, 2),
        max_profit=round(profit(optimal), 2),
        profit_margin=round(safe_divide(break_even - optimal, break_even), 4),
        break_even_cpc=round(break_even, 2),
        profit_curve=curve,
    )


def calculate_model_confidence(points: Sequence[BidPerformancePoint], r2: float) -> float:
    """Blend of data volume, fit quality and click consistency"""
    if not points:
        return 0.0

    data_confidence = min(len(points) / 30, 1.0)
    clicks = np.array([p.clicks for p in points], dtype=float)
    cv = float(clicks.std()) / max(float(clicks.mean()), 1.0)
    consistency = max(0.0, 1 - cv)

    return round(data_confidence * 0.4 + max(0.0, r2) * 0.3 + consistency * 0.3, 4)


def generate_profit_curve_data(
    impression_curve: ImpressionCurve,
    ctr_curve: CtrCurve,
    conversion: ConversionParams,
    min_cpc: float = 0.1,
    max_cpc: float = 5.0,
    points: int = 50
) -> List[Dict[str, float]]:
    data = []
    for cpc in np.linspace(min_cpc, max_cpc, points + 1):
        cpc = float(cpc)
        clicks = calculate_impressions(cpc, impression_curve) * calculate_ctr(cpc, ctr_curve)
        spend = clicks * cpc
        revenue = clicks * conversion.cvr * conversion.aov

        data.append({
            "cpc": round(cpc, 2),
            "impressions": round(calculate_impressions(cpc, impression_curve)),
            "clicks": round(clicks),
            "spend": round(spend, 2),
            "revenue": round(revenue, 2),
            "profit": round(revenue - spend, 2),
            "roas": round(safe_divide(revenue, spend), 2),
            "acos": round(safe_divide(spend, revenue) * 100, 2),
        })
    return data


def build_profit_model(points: Sequence[BidPerformancePoint]) -> ProfitCurveModel:
    """Fit every curve and locate the profit-maximizing bid"""
    impression_curve = build_impression_curve(points)
    ctr_curve = build_ctr_curve(points)
    conversion = calculate_conversion_params(points)
    optimum = calculate_optimal_profit_bid(impression_curve, ctr_curve, conversion)

    # Summary-only data gets a fixed low confidence
    if len(points) < 5:
        confidence = 0.3
    else:
        confidence = calculate_model_confidence(points, impression_curve.r2)

    logger.info(
        f"💹 Profit model: optimal bid ${optimum.optimal_bid:.2f}, "
        f"break-even ${optimum.break_even_cpc:.2f}, confidence {confidence:.2f}"
    )

    return ProfitCurveModel(
        impression_curve=impression_curve,
        ctr_curve=ctr_curve,
        conversion=conversion,
        optimum=optimum,
        data_points=len(points),
        confidence=confidence,
    )
