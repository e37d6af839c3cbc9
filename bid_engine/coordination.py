"""
Placement / bid coordination
Keeps base-bid and placement-tilt changes from compounding into runaway CPC
"""

from typing import Optional, Sequence, Dict

from .config import settings
from .logger import get_logger
from .metrics import safe_divide
from .models import (
    PLACEMENT_TYPES,
    BIDDING_STRATEGIES,
    BidProposal,
    CoordinatedAdjustment,
    CoordinatedBid,
    CpcSafetyCheck,
    NormalizedBid,
)

logger = get_logger(__name__)


def effective_cpc(base_bid: float, tilt_percent: float) -> float:
    return base_bid * (1 + tilt_percent / 100)


def max_tilt_for_strategy(strategy: str) -> float:
    """Dynamic up-and-down bidding already doubles bids, so tilts get less room"""
    _validate_strategy(strategy)
    return 100.0 if strategy == "up_and_down" else 200.0


class PlacementBidCoordinator:
    def __init__(self, max_cpc_increase_percent: float = None, max_safe_cpc: float = None):
        self.max_cpc_increase_percent = (
            settings.max_cpc_increase_percent if max_cpc_increase_percent is None else max_cpc_increase_percent
        )
        self.max_safe_cpc = settings.max_safe_cpc if max_safe_cpc is None else max_safe_cpc

    def normalize_base_bid(self, effective_bid: float, multiplier_percent: float) -> NormalizedBid:
        """Strip the placement multiplier out of an observed effective CPC"""
        multiplier = 1 + multiplier_percent / 100
        normalized = safe_divide(effective_bid, multiplier)
        return NormalizedBid(
            original_bid=normalized,
            effective_bid=effective_bid,
            normalized_bid=normalized,
            placement_multiplier=multiplier,
        )

    def calculate_coordinated_adjustment(
        self,
        base_bid: float,
        current_tilts: Dict[str, float],
        proposed_tilts: Dict[str, float],
        max_cpc_increase_percent: float = None,
        previous_base_bid: float = None
    ) -> CoordinatedAdjustment:
        """
        Check the placement with the largest proposed tilt increase.
        If its effective CPC would rise more than allowed, return the
        (negative) base-bid change in percent that brings it back to the limit.

        base_bid is the base bid going out with the proposed tilts. When the
        same pass also moved the base bid, previous_base_bid is the bid in
        place before it; the current effective CPC is measured from that, so
        a bid raise and a tilt raise are limited together.
        """
        limit = self.max_cpc_increase_percent if max_cpc_increase_percent is None else max_cpc_increase_percent
        previous_base_bid = base_bid if previous_base_bid is None else previous_base_bid
        placements = [p for p in PLACEMENT_TYPES if p in proposed_tilts]
        placements += [p for p in proposed_tilts if p not in PLACEMENT_TYPES]

        if not placements or base_bid <= 0 or previous_base_bid <= 0:
            return CoordinatedAdjustment(
                base_bid_adjustment=0.0,
                placement_adjustments=dict(proposed_tilts),
                total_effective_cpc_change=0.0,
            )

        driving = max(placements, key=lambda p: proposed_tilts[p] - current_tilts.get(p, 0))
        current_cpc = effective_cpc(previous_base_bid, current_tilts.get(driving, 0))
        proposed_cpc = effective_cpc(base_bid, proposed_tilts[driving])
        cpc_change = safe_divide(proposed_cpc - current_cpc, current_cpc) * 100

        base_bid_adjustment = 0.0
        total_change = cpc_change
        warning = None

        if cpc_change > limit:
            target_cpc = current_cpc * (1 + limit / 100)
            required_base = target_cpc / (1 + proposed_tilts[driving] / 100)
            base_bid_adjustment = (required_base - base_bid) / base_bid * 100
            total_change = limit
            bid_note = ""
            if previous_base_bid != base_bid:
                bid_note = f"with base bid ${previous_base_bid:.2f}→${base_bid:.2f} "
            warning = (
                f"{driving} tilt {current_tilts.get(driving, 0):.0f}%→{proposed_tilts[driving]:.0f}% "
                f"{bid_note}would raise effective CPC by {cpc_change:.1f}% (limit {limit:.0f}%); "
                f"lower base bid by {abs(base_bid_adjustment):.1f}%"
            )
            logger.warning(f"⚠️ {warning}")

        return CoordinatedAdjustment(
            base_bid_adjustment=round(base_bid_adjustment, 2),
            placement_adjustments=dict(proposed_tilts),
            total_effective_cpc_change=round(total_change, 2),
            driving_placement=driving,
            warning=warning,
        )

    def check_effective_cpc_safety(
        self,
        base_bid: float,
        tilt_percent: float,
        bidding_strategy: str,
        max_safe_cpc: float = None
    ) -> CpcSafetyCheck:
        _validate_strategy(bidding_strategy)
        max_safe_cpc = self.max_safe_cpc if max_safe_cpc is None else max_safe_cpc

        cpc = effective_cpc(base_bid, tilt_percent)
        max_possible = cpc * 2 if bidding_strategy == "up_and_down" else cpc
        is_safe = max_possible <= max_safe_cpc

        warning = None
        if not is_safe:
            warning = (
                f"max possible CPC ${max_possible:.2f} ({bidding_strategy}) "
                f"exceeds safe limit ${max_safe_cpc:.2f}"
            )
            logger.warning(f"🚨 {warning}")

        return CpcSafetyCheck(
            effective_cpc=round(cpc, 2),
            max_possible_cpc=round(max_possible, 2),
            is_safe=is_safe,
            warning=warning,
        )


class BidCoordinator:
    """
    Merge bid proposals from independent sources into one base bid.

    Multiplier proposals compound, damped by source weight and confidence.
    Absolute bid proposals are averaged by the same weights. A circuit
    breaker then caps the worst-case CPC after dayparting and placement
    multipliers are applied.
    """

    SOURCE_WEIGHTS = {
        "base_algorithm": 1.0,
        "dayparting": 0.8,
        "placement": 0.7,
        "inventory": 1.0,
        "organic_rank": 0.6,
    }

    def __init__(
        self,
        max_allowed_cpc: float = None,
        cpc_warning_threshold: float = None,
        max_total_multiplier: float = None,
        min_bid: float = None,
        max_bid: float = None
    ):
        self.max_allowed_cpc = settings.max_allowed_cpc if max_allowed_cpc is None else max_allowed_cpc
        self.cpc_warning_threshold = (
            settings.cpc_warning_threshold if cpc_warning_threshold is None else cpc_warning_threshold
        )
        self.max_total_multiplier = (
            settings.max_total_multiplier if max_total_multiplier is None else max_total_multiplier
        )
        self.min_bid = settings.min_bid if min_bid is None else min_bid
        self.max_bid = settings.max_bid if max_bid is None else max_bid

    def coordinate(
        self,
        current_bid: float,
        proposals: Sequence[BidProposal],
        dayparting_multiplier: float = 1.0,
        placement_percent: float = 0.0
    ) -> CoordinatedBid:
        warnings = []
        contributions = {}

        weighted_sum = 0.0
        weight_total = 0.0
        multiplier = 1.0

        for proposal in proposals:
            weight = self.SOURCE_WEIGHTS.get(proposal.source, 0.5) * max(0.0, min(1.0, proposal.confidence))
            if proposal.suggested_multiplier is not None:
                damped = 1 + (proposal.suggested_multiplier - 1) * weight
                multiplier *= damped
                contributions[proposal.source] = round(damped, 4)
            elif proposal.suggested_bid is not None:
                weighted_sum += proposal.suggested_bid * weight
                weight_total += weight
                contributions[proposal.source] = round(proposal.suggested_bid, 2)

        base_bid = weighted_sum / weight_total if weight_total > 0 else current_bid

        if multiplier > self.max_total_multiplier:
            warnings.append(
                f"combined multiplier {multiplier:.2f} capped at {self.max_total_multiplier:.2f}"
            )
            multiplier = self.max_total_multiplier

        final_bid = base_bid * multiplier
        downstream = dayparting_multiplier * (1 + placement_percent / 100)
        theoretical_max = final_bid * downstream
        triggered = False

        if theoretical_max > self.max_allowed_cpc and downstream > 0:
            triggered = True
            final_bid = self.max_allowed_cpc / downstream
            warnings.append(
                f"circuit breaker: worst-case CPC ${theoretical_max:.2f} over ${self.max_allowed_cpc:.2f}, "
                f"base bid reduced to ${final_bid:.2f}"
            )
            theoretical_max = self.max_allowed_cpc
        elif theoretical_max > self.cpc_warning_threshold:
            warnings.append(
                f"worst-case CPC ${theoretical_max:.2f} above warning threshold ${self.cpc_warning_threshold:.2f}"
            )

        final_bid = round(max(self.min_bid, min(final_bid, self.max_bid)), 2)

        for warning in warnings:
            logger.warning(f"🚨 {warning}")

        return CoordinatedBid(
            original_bid=current_bid,
            final_bid=final_bid,
            theoretical_max_cpc=round(theoretical_max, 2),
            circuit_breaker_triggered=triggered,
            contributions=contributions,
            warnings=warnings,
        )


def _validate_strategy(strategy: str):
    if strategy not in BIDDING_STRATEGIES:
        raise ValueError(f"Unknown bidding strategy: {strategy}")
