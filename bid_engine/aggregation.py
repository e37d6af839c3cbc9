"""
Report frame helpers
Turn report-shaped pandas DataFrames into engine inputs
"""

from typing import Dict, List, Optional

import pandas as pd

from .logger import get_logger
from .models import (
    PLACEMENT_TYPES,
    BidPerformancePoint,
    BidSample,
    HourlyDataPoint,
    OptimizationTarget,
    PlacementAggregate,
    PlacementDataPoint,
)

logger = get_logger(__name__)

PLACEMENT_ALIASES = {
    "top_of_search": "top_of_search",
    "top_search": "top_of_search",
    "placement_top": "top_of_search",
    "top of search on-amazon": "top_of_search",
    "product_page": "product_page",
    "product_pages": "product_page",
    "placement_product_page": "product_page",
    "detail page on-amazon": "product_page",
    "rest_of_search": "rest_of_search",
    "rest": "rest_of_search",
    "placement_rest_of_search": "rest_of_search",
    "other on-amazon": "rest_of_search",
}

COLUMN_ALIASES = {
    "id": ("id", "targetId", "keywordId", "asin"),
    "bid": ("current_bid", "currentBid", "bid", "keywordBid"),
    "impressions": ("impressions",),
    "clicks": ("clicks",),
    "spend": ("spend", "cost"),
    "sales": ("sales", "attributedSales14d", "sales14d"),
    "orders": ("orders", "attributedConversions14d", "purchases14d"),
    "placement": ("placement", "placementType", "placementClassification"),
    "date": ("date", "reportDate"),
    "hour": ("hour", "hourOfDay"),
    "type": ("type", "targetType"),
}

METRIC_COLUMNS = ["impressions", "clicks", "spend", "sales", "orders"]


def normalize_placement(name: str) -> Optional[str]:
    if name is None:
        return None
    key = str(name).strip().lower()
    return PLACEMENT_ALIASES.get(key) or PLACEMENT_ALIASES.get(key.replace(" ", "_").replace("-", "_"))


def normalize_frame(df: pd.DataFrame) -> pd.DataFrame:
    """Rename known column aliases to canonical names and coerce metric columns"""
    cols = {c.lower(): c for c in df.columns}
    renames = {}
    for canonical, names in COLUMN_ALIASES.items():
        for name in names:
            if name.lower() in cols:
                renames[cols[name.lower()]] = canonical
                break

    out = df.rename(columns=renames).copy()
    for col in METRIC_COLUMNS:
        if col not in out.columns:
            out[col] = 0
        out[col] = pd.to_numeric(out[col], errors="coerce").fillna(0)
    for col in ("impressions", "clicks", "orders"):
        out[col] = out[col].astype(int)

    if "date" in out.columns:
        out["date"] = pd.to_datetime(out["date"], errors="coerce").dt.date
    if "placement" in out.columns:
        out["placement"] = out["placement"].map(normalize_placement)
    return out


def targets_from_frame(df: pd.DataFrame) -> List[OptimizationTarget]:
    """One target per id, metrics summed over the frame's period"""
    df = normalize_frame(df)
    if df.empty:
        return []
    missing = {"id", "bid"} - set(df.columns)
    if missing:
        raise ValueError(f"Target frame missing required columns: {sorted(missing)}")

    df["id"] = df["id"].astype(str)
    df["bid"] = pd.to_numeric(df["bid"], errors="coerce")
    if "type" not in df.columns:
        df["type"] = "keyword"

    grouped = df.groupby("id", sort=False).agg(
        bid=("bid", "last"),
        type=("type", "first"),
        **{col: (col, "sum") for col in METRIC_COLUMNS},
    )

    targets = []
    for target_id, row in grouped.iterrows():
        if pd.isna(row["bid"]):
            logger.warning(f"⚠️ Skipping target {target_id}: no current bid")
            continue
        targets.append(OptimizationTarget(
            id=target_id,
            type=row["type"] if row["type"] in ("keyword", "asin") else "keyword",
            current_bid=float(row["bid"]),
            impressions=int(row["impressions"]),
            clicks=int(row["clicks"]),
            spend=float(row["spend"]),
            sales=float(row["sales"]),
            orders=int(row["orders"]),
        ))
    return targets


def placement_points_from_frame(df: pd.DataFrame) -> Dict[str, List[PlacementDataPoint]]:
    """Daily points per placement, most recent first"""
    df = _placement_rows(df)
    result = {p: [] for p in PLACEMENT_TYPES}
    if df.empty:
        return result
    if "date" not in df.columns:
        raise ValueError("Placement frame needs a date column")

    daily = df.groupby(["placement", "date"], as_index=False)[METRIC_COLUMNS].sum()
    daily = daily.sort_values("date", ascending=False)

    for row in daily.itertuples(index=False):
        result[row.placement].append(PlacementDataPoint(
            impressions=int(row.impressions),
            clicks=int(row.clicks),
            spend=float(row.spend),
            sales=float(row.sales),
            orders=int(row.orders),
            date=row.date,
        ))
    return result


def aggregate_placement_frame(df: pd.DataFrame) -> Dict[str, PlacementAggregate]:
    """Period totals per placement; days counts distinct report dates"""
    df = _placement_rows(df)
    result = {}
    if df.empty:
        return result

    totals = df.groupby("placement")[METRIC_COLUMNS].sum()
    days = df.groupby("placement")["date"].nunique() if "date" in df.columns else None

    for placement, row in totals.iterrows():
        result[placement] = PlacementAggregate(
            impressions=int(row["impressions"]),
            clicks=int(row["clicks"]),
            spend=float(row["spend"]),
            sales=float(row["sales"]),
            orders=int(row["orders"]),
            days=int(days[placement]) if days is not None else 1,
        )
    return result


def hourly_points_from_frame(df: pd.DataFrame) -> List[HourlyDataPoint]:
    df = normalize_frame(df)
    if df.empty:
        return []
    if "hour" not in df.columns:
        raise ValueError("Hourly frame needs an hour column")

    df["hour"] = pd.to_numeric(df["hour"], errors="coerce")
    df = df.dropna(subset=["hour"])
    hourly = df.groupby(df["hour"].astype(int))[METRIC_COLUMNS].sum()

    return [
        HourlyDataPoint(
            hour=int(hour),
            impressions=int(row["impressions"]),
            clicks=int(row["clicks"]),
            spend=float(row["spend"]),
            sales=float(row["sales"]),
            orders=int(row["orders"]),
        )
        for hour, row in hourly.iterrows()
    ]


def bid_performance_from_frame(df: pd.DataFrame) -> List[BidPerformancePoint]:
    """Performance per distinct bid level, for curve fitting"""
    df = normalize_frame(df)
    if df.empty or "bid" not in df.columns:
        return []

    df["bid"] = pd.to_numeric(df["bid"], errors="coerce")
    by_bid = df.dropna(subset=["bid"]).groupby("bid")[METRIC_COLUMNS].sum()

    return [
        BidPerformancePoint(
            bid=float(bid),
            impressions=int(row["impressions"]),
            clicks=int(row["clicks"]),
            spend=float(row["spend"]),
            sales=float(row["sales"]),
            orders=int(row["orders"]),
        )
        for bid, row in by_bid.iterrows()
    ]


def bid_samples_from_frame(df: pd.DataFrame) -> List[BidSample]:
    return [BidSample(bid=p.bid, impressions=p.impressions) for p in bid_performance_from_frame(df)]


def _placement_rows(df: pd.DataFrame) -> pd.DataFrame:
    df = normalize_frame(df)
    if df.empty:
        return df
    if "placement" not in df.columns:
        raise ValueError("Placement frame needs a placement column")

    unknown = df["placement"].isna().sum()
    if unknown:
        logger.warning(f"⚠️ Dropping {unknown} rows with unrecognized placement")
    return df.dropna(subset=["placement"])
