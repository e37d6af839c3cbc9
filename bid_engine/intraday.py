"""
Intraday (dayparting) bid adjustments
"""

from datetime import datetime
from typing import Optional, Sequence, Dict

import pytz

from .config import settings
from .logger import get_logger
from .metrics import safe_divide
from .models import HourlyDataPoint

logger = get_logger(__name__)


class IntradayAdjustmentCalculator:
    """Bid adjustment percent per hour from the hour's ROAS versus the daily average"""

    def __init__(self, sensitivity: float = None, max_percent: float = None):
        self.sensitivity = settings.intraday_sensitivity if sensitivity is None else sensitivity
        self.max_percent = settings.intraday_max_percent if max_percent is None else max_percent
        self.tz = pytz.timezone(settings.timezone)

    def calculate_intraday_adjustment(
        self,
        hourly: Sequence[HourlyDataPoint],
        hour: Optional[int] = None
    ) -> int:
        """
        Adjustment percent for one hour, within ±max_percent.
        Returns 0 when the hour has no spend data.
        """
        if hour is None:
            hour = datetime.now(self.tz).hour

        by_hour = self._merge_hours(hourly)
        current = by_hour.get(hour)
        if current is None or current["spend"] <= 0:
            return 0

        hourly_roas = [safe_divide(h["sales"], h["spend"]) for h in by_hour.values() if h["spend"] > 0]
        avg_roas = sum(hourly_roas) / len(hourly_roas)
        hour_roas = current["sales"] / current["spend"]
        ratio = hour_roas / avg_roas if avg_roas > 0 else 1.0

        adjustment = (ratio - 1) * self.sensitivity
        adjustment = max(-self.max_percent, min(self.max_percent, adjustment))
        return int(round(adjustment))

    def build_intraday_schedule(self, hourly: Sequence[HourlyDataPoint]) -> Dict[int, int]:
        schedule = {hour: self.calculate_intraday_adjustment(hourly, hour) for hour in range(24)}
        active = sum(1 for v in schedule.values() if v)
        logger.info(f"🕐 Intraday schedule: {active} of 24 hours adjusted")
        return schedule

    def _merge_hours(self, hourly: Sequence[HourlyDataPoint]) -> Dict[int, Dict[str, float]]:
        # Several days of data can share an hour
        merged = {}
        for point in hourly:
            bucket = merged.setdefault(point.hour, {"spend": 0.0, "sales": 0.0})
            bucket["spend"] += point.spend
            bucket["sales"] += point.sales
        return merged
