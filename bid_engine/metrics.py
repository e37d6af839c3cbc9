"""
Derived performance metrics
All ratios are guarded: a zero denominator yields 0
"""

from .models import DerivedMetrics

# Risk-score value for cost with no revenue
ACOS_SENTINEL = 999.0


def safe_divide(numerator: float, denominator: float) -> float:
    if not denominator:
        return 0.0
    return numerator / denominator


def acos_risk(spend: float, sales: float) -> float:
    """
    ACoS used as a risk score.
    Cost with no revenue is infinitely bad, so it maps to the sentinel.
    """
    if sales > 0:
        return spend / sales * 100
    return ACOS_SENTINEL if spend > 0 else 0.0


def calculate_metrics(counters) -> DerivedMetrics:
    """
    Derive ACoS/ROAS/CTR/CVR/CPC/AOV from raw counters.
    Accepts anything with impressions, clicks, spend, sales and orders.
    """
    impressions = counters.impressions or 0
    clicks = counters.clicks or 0
    spend = counters.spend or 0.0
    sales = counters.sales or 0.0
    orders = counters.orders or 0

    return DerivedMetrics(
        acos=safe_divide(spend, sales) * 100,
        roas=safe_divide(sales, spend),
        ctr=safe_divide(clicks, impressions) * 100,
        cvr=safe_divide(orders, clicks) * 100,
        cpc=safe_divide(spend, clicks),
        aov=safe_divide(sales, orders),
    )
