"""Execution plan models."""

from collections.abc import Iterator
from typing import Literal, Optional

from pydantic import BaseModel, Field


class ExplainNode(BaseModel):
    """A node of an execution plan tree."""

    type: str = Field(..., description="Operation type (Seq Scan, Hash Join, ...)")
    label: str = Field(..., description="Human-readable description of the node")
    cost: Optional[float] = Field(None, description="Estimated total cost")
    rows: Optional[float] = Field(None, description="Estimated rows produced")
    actual_time: Optional[float] = Field(
        None, description="Actual total time in ms (ANALYZE only)"
    )
    actual_rows: Optional[float] = Field(
        None, description="Actual rows produced (ANALYZE only)"
    )
    children: list["ExplainNode"] = Field(
        default_factory=list, description="Child operations"
    )

    def walk(self) -> Iterator["ExplainNode"]:
        """Iterate over this node and all descendants, depth first."""
        yield self
        for child in self.children:
            yield from child.walk()

    @property
    def node_count(self) -> int:
        """Number of nodes in the subtree rooted here."""
        return sum(1 for _ in self.walk())

    @property
    def has_actual_stats(self) -> bool:
        """Check if the node carries ANALYZE statistics."""
        return self.actual_time is not None or self.actual_rows is not None


class ExplainResult(BaseModel):
    """Plan tree of an explained statement plus execution metadata."""

    query: str = Field(..., description="Explained SQL statement")
    dialect: str = Field(..., description="Dialect that produced the plan")
    plan: ExplainNode = Field(..., description="Root of the plan tree")
    is_analyze: bool = Field(
        default=False, description="Whether actual statistics were requested"
    )
    execution_time_ms: Optional[float] = Field(
        None, description="Wall-clock time of the EXPLAIN round trip"
    )
    warnings: list[str] = Field(
        default_factory=list, description="Performance warnings"
    )
    recommendations: list[str] = Field(
        default_factory=list, description="Optimization recommendations"
    )

    def add_warning(self, warning: str) -> None:
        """Add a performance warning."""
        if warning not in self.warnings:
            self.warnings.append(warning)

    def add_recommendation(self, recommendation: str) -> None:
        """Add an optimization recommendation."""
        if recommendation not in self.recommendations:
            self.recommendations.append(recommendation)

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "query": "SELECT * FROM users WHERE email = 'a@example.com'",
                    "dialect": "postgres",
                    "plan": {
                        "type": "Seq Scan",
                        "label": "Seq Scan on users",
                        "cost": 25.88,
                        "rows": 1,
                        "actual_time": None,
                        "actual_rows": None,
                        "children": [],
                    },
                    "is_analyze": False,
                    "execution_time_ms": 1.7,
                    "warnings": ["Sequential scan on users"],
                    "recommendations": ["Consider adding an index on users"],
                }
            ]
        }
    }


HotPathTier = Literal["critical", "warning", "normal"]


class NodeAnalysis(BaseModel):
    """Share of execution time and estimation quality of one plan node."""

    node_id: str = Field(..., description="Path of the node in the tree, e.g. '0.1.0'")
    node_type: str = Field(..., description="Operation type")
    label: str = Field(..., description="Node label")
    effective_time: float = Field(0.0, description="Actual time in ms")
    percentage_of_total: float = Field(
        0.0, description="Fraction (0-1) of the root's actual time"
    )
    tier: HotPathTier = Field("normal", description="Hot path classification")
    row_estimation_ratio: float = Field(
        1.0, description="Ratio between actual and estimated rows, always >= 1"
    )
    has_estimation_error: bool = Field(
        False, description="Whether estimated rows are off by 10x or more"
    )


class PlanAnalysis(BaseModel):
    """Hot path analysis of an ANALYZE plan."""

    total_time: float = Field(0.0, description="Root actual time in ms")
    has_analyze_data: bool = Field(
        False, description="Whether the plan carried actual timings"
    )
    nodes: list[NodeAnalysis] = Field(
        default_factory=list, description="Analysis of every node, depth first"
    )
    bottlenecks: list[NodeAnalysis] = Field(
        default_factory=list,
        description="Critical and warning nodes, largest share first",
    )
