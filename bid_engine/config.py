"""
Central configuration for the optimization engine.
Uses pydantic-settings to load from environment with sane defaults.
"""

from pydantic_settings import BaseSettings
from pydantic import Field


class Settings(BaseSettings):
    # Behavior
    timezone: str = Field(default="America/New_York", alias="TIMEZONE")
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")

    # Bid bounds (platform caps)
    min_bid: float = Field(default=0.02, alias="MIN_BID")
    max_bid: float = Field(default=10.0, alias="MAX_BID")
    max_bid_change_percent: float = Field(default=25.0, alias="MAX_BID_CHANGE_PERCENT")

    # Data sufficiency gate
    min_impressions: int = Field(default=100, alias="MIN_IMPRESSIONS")
    min_clicks: int = Field(default=3, alias="MIN_CLICKS")
    min_change_percent: float = Field(default=1.0, alias="MIN_CHANGE_PERCENT")

    # Market curve
    curve_min_bid: float = Field(default=0.10, alias="CURVE_MIN_BID")
    curve_max_bid: float = Field(default=5.00, alias="CURVE_MAX_BID")
    curve_steps: int = Field(default=20, alias="CURVE_STEPS")
    capture_rate: float = Field(default=0.6, alias="CAPTURE_RATE")
    ceiling_bid: float = Field(default=10.0, alias="CEILING_BID")
    ceiling_headroom: float = Field(default=1.5, alias="CEILING_HEADROOM")
    min_history_samples: int = Field(default=3, alias="MIN_HISTORY_SAMPLES")
    default_cpc_ratio: float = Field(default=0.7, alias="DEFAULT_CPC_RATIO")
    click_elasticity: float = Field(default=0.8, alias="CLICK_ELASTICITY")

    # Default goal targets (percent ACoS, ratio ROAS)
    target_acos: float = Field(default=30.0, alias="TARGET_ACOS")
    target_roas: float = Field(default=3.0, alias="TARGET_ROAS")

    # Placement marginal benefit (calibration constants)
    analysis_window_days: int = Field(default=30, alias="ANALYSIS_WINDOW_DAYS")
    min_data_points: int = Field(default=7, alias="MIN_DATA_POINTS")
    flow_sensitivity: float = Field(default=0.008, alias="FLOW_SENSITIVITY")
    retention_decay: float = Field(default=0.001, alias="RETENTION_DECAY")
    retention_floor: float = Field(default=0.7, alias="RETENTION_FLOOR")
    cpc_inflation: float = Field(default=0.002, alias="CPC_INFLATION")
    assumed_tilt_delta: float = Field(default=0.1, alias="ASSUMED_TILT_DELTA")

    # Traffic allocation constraints
    max_total_adjustment: float = Field(default=400.0, alias="MAX_TOTAL_ADJUSTMENT")
    min_adjustment_per_placement: float = Field(default=-50.0, alias="MIN_ADJUSTMENT_PER_PLACEMENT")
    max_adjustment_per_placement: float = Field(default=200.0, alias="MAX_ADJUSTMENT_PER_PLACEMENT")
    max_spend_increase: float = Field(default=30.0, alias="MAX_SPEND_INCREASE")

    # Traffic allocation tuning
    allocation_step: float = Field(default=5.0, alias="ALLOCATION_STEP")
    allocation_max_iterations: int = Field(default=20, alias="ALLOCATION_MAX_ITERATIONS")
    transfer_score_ratio: float = Field(default=0.5, alias="TRANSFER_SCORE_RATIO")

    # Placement / bid coordination
    max_cpc_increase_percent: float = Field(default=30.0, alias="MAX_CPC_INCREASE_PERCENT")
    max_safe_cpc: float = Field(default=10.0, alias="MAX_SAFE_CPC")
    max_allowed_cpc: float = Field(default=5.0, alias="MAX_ALLOWED_CPC")
    cpc_warning_threshold: float = Field(default=3.0, alias="CPC_WARNING_THRESHOLD")
    max_total_multiplier: float = Field(default=2.5, alias="MAX_TOTAL_MULTIPLIER")

    # Intraday
    intraday_sensitivity: float = Field(default=30.0, alias="INTRADAY_SENSITIVITY")
    intraday_max_percent: float = Field(default=30.0, alias="INTRADAY_MAX_PERCENT")

    class Config:
        populate_by_name = True
        case_sensitive = False


# Single settings instance
settings = Settings()

__all__ = ["settings", "Settings"]
