"""
Markdown report of placement marginal benefit
"""

from typing import Dict, Optional

from .models import MarginalBenefitResult, TrafficAllocationResult, PLACEMENT_TYPES

PLACEMENT_LABELS = {
    "top_of_search": "Top of search",
    "product_page": "Product page",
    "rest_of_search": "Rest of search",
}


def generate_marginal_benefit_report(
    benefits: Dict[str, MarginalBenefitResult],
    allocation: Optional[TrafficAllocationResult] = None
) -> str:
    lines = [
        "# Placement Marginal Benefit Report",
        "",
        "## Marginal metrics",
        "",
        "| Placement | Tilt | Marginal ROAS | Marginal ACoS | Elasticity | Diminishing point | Suggested range | Confidence |",
        "|---|---|---|---|---|---|---|---|",
    ]

    ordered = [p for p in PLACEMENT_TYPES if p in benefits] + [p for p in benefits if p not in PLACEMENT_TYPES]
    for placement in ordered:
        b = benefits[placement]
        lines.append(
            f"| {PLACEMENT_LABELS.get(placement, placement)} | {b.current_adjustment:.0f}% "
            f"| {b.marginal_roas:.2f} | {b.marginal_acos:.1f}% | {b.elasticity:.2f} "
            f"| {b.diminishing_point:.0f}% | {b.optimal_range.min:.0f}%-{b.optimal_range.max:.0f}% "
            f"| {b.confidence * 100:.0f}% |"
        )

    low_confidence = [PLACEMENT_LABELS.get(p, p) for p in ordered if benefits[p].confidence < 0.5]
    if low_confidence:
        lines += ["", f"> Low confidence for: {', '.join(low_confidence)}. Collect more data before acting."]

    if allocation is not None:
        lines += [
            "",
            f"## Allocation ({allocation.optimization_goal})",
            "",
            "| Placement | Current | Suggested | Change | Reason |",
            "|---|---|---|---|---|",
        ]
        for a in allocation.allocations:
            lines.append(
                f"| {PLACEMENT_LABELS.get(a.placement_type, a.placement_type)} | {a.current_adjustment:.0f}% "
                f"| {a.suggested_adjustment:.0f}% | {a.adjustment_delta:+.0f}% | {a.allocation_reason} |"
            )

        imp = allocation.improvement
        lines += [
            "",
            "## Expected effect",
            "",
            f"- Sales change: ${imp.sales_change:,.2f} ({imp.sales_change_percent:+.1f}%)",
            f"- Expected ROAS: {allocation.expected_roas:.2f} ({imp.roas_change:+.2f})",
            f"- Expected ACoS: {allocation.expected_acos:.1f}% ({imp.acos_change:+.1f} pts)",
            f"- Confidence: {allocation.confidence * 100:.0f}%",
        ]
        for warning in allocation.warnings:
            lines.append(f"- Warning: {warning}")

    return "\n".join(lines) + "\n"
