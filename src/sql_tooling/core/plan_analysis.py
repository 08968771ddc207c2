"""Hot path and full scan analysis of execution plans."""

import re
from typing import Optional

from sql_tooling.models.explain import (
    ExplainNode,
    HotPathTier,
    NodeAnalysis,
    PlanAnalysis,
)

# Share of total execution time
CRITICAL_THRESHOLD = 0.4
WARNING_THRESHOLD = 0.2
# Actual vs estimated rows
ROW_ESTIMATION_ERROR_THRESHOLD = 10.0

# Node types that read every row of a table
_FULL_SCAN_TYPES = {
    "seq scan",
    "parallel seq scan",
    "seq_scan",
    "table_scan",
    "full table scan",
    "table scan",
}
_RELATION = re.compile(r"\bon\s+([^\s(]+)")
_SQLITE_SCAN = re.compile(r"^SCAN\s+(?:TABLE\s+)?(\S+)", re.IGNORECASE)


def _determine_tier(percentage: float) -> HotPathTier:
    if percentage >= CRITICAL_THRESHOLD:
        return "critical"
    if percentage >= WARNING_THRESHOLD:
        return "warning"
    return "normal"


def row_estimation_ratio(node: ExplainNode) -> float:
    """
    Ratio between actual and estimated rows, oriented to be >= 1.

    Returns 1 when either figure is unavailable or the estimate is zero.
    """
    if node.actual_rows is None or not node.rows:
        return 1.0
    if node.actual_rows == 0:
        return node.rows
    if node.actual_rows > node.rows:
        return node.actual_rows / node.rows
    return node.rows / node.actual_rows


def analyze_plan(plan: ExplainNode) -> PlanAnalysis:
    """
    Classify each plan node by its share of the root's actual time.

    Args:
        plan: Root of an ANALYZE plan

    Returns:
        Per-node analysis and the critical/warning bottlenecks, largest
        share first. Plans without actual timings yield an empty analysis.
    """
    if plan.actual_time is None:
        return PlanAnalysis()

    total_time = plan.actual_time
    nodes: list[NodeAnalysis] = []

    def visit(node: ExplainNode, node_id: str) -> None:
        effective_time = node.actual_time or 0.0
        percentage = effective_time / total_time if total_time > 0 else 0.0
        ratio = row_estimation_ratio(node)
        nodes.append(
            NodeAnalysis(
                node_id=node_id,
                node_type=node.type,
                label=node.label,
                effective_time=effective_time,
                percentage_of_total=percentage,
                tier=_determine_tier(percentage),
                row_estimation_ratio=ratio,
                has_estimation_error=ratio >= ROW_ESTIMATION_ERROR_THRESHOLD,
            )
        )
        for index, child in enumerate(node.children):
            visit(child, f"{node_id}.{index}")

    visit(plan, "0")

    bottlenecks = sorted(
        (node for node in nodes if node.tier != "normal"),
        key=lambda node: node.percentage_of_total,
        reverse=True,
    )
    return PlanAnalysis(
        total_time=total_time,
        has_analyze_data=True,
        nodes=nodes,
        bottlenecks=bottlenecks,
    )


def _full_scan_relation(node: ExplainNode) -> Optional[str]:
    """Relation read by a full scan node, "" if unnamed, None if not a full scan."""
    if node.type.strip().lower() in _FULL_SCAN_TYPES:
        match = _RELATION.search(node.label)
        return match.group(1) if match else ""

    # SQLite reports "SCAN users" for full scans, "SCAN users USING INDEX ..." otherwise
    if node.type == "Scan":
        match = _SQLITE_SCAN.match(node.label)
        if match and "INDEX" not in node.label.upper():
            return match.group(1)
    return None


def plan_warnings(plan: ExplainNode) -> tuple[list[str], list[str]]:
    """
    Derive warnings and recommendations from a plan tree.

    Args:
        plan: Root plan node

    Returns:
        (warnings, recommendations), each without duplicates
    """
    warnings: list[str] = []
    recommendations: list[str] = []

    def add(warning: str, recommendation: str) -> None:
        if warning not in warnings:
            warnings.append(warning)
        if recommendation not in recommendations:
            recommendations.append(recommendation)

    for node in plan.walk():
        relation = _full_scan_relation(node)
        if relation:
            add(
                f"Full table scan on {relation} - may be slow on large tables",
                f"Consider adding an index on {relation} for the filtered columns",
            )
        elif relation is not None:
            add(
                "Sequential scan detected - may be slow on large tables",
                "Consider adding appropriate indexes",
            )

        if node.type == "Temp B-Tree" or "filesort" in node.label.lower():
            add(
                f"Sort without a usable index ({node.label})",
                "Consider an index matching the ORDER BY / GROUP BY columns",
            )

        ratio = row_estimation_ratio(node)
        if ratio >= ROW_ESTIMATION_ERROR_THRESHOLD:
            add(
                f"Row estimate off by {ratio:.0f}x at {node.label}",
                "Refresh table statistics (ANALYZE) so the planner estimates better",
            )

    return warnings, recommendations
