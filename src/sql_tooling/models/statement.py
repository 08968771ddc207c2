"""Statement span model produced by the SQL splitter."""

from pydantic import BaseModel, ConfigDict, Field


class StatementSpan(BaseModel):
    """One executable statement and its position in the source buffer."""

    model_config = ConfigDict(frozen=True)

    text: str = Field(..., description="Trimmed statement text without terminator")
    index: int = Field(..., ge=0, description="Order of the statement in the buffer")
    start_offset: int = Field(
        ..., ge=0, description="Offset right after the previous delimiter"
    )
    end_offset: int = Field(
        ..., description="Offset of the terminating ';' or last character of input"
    )

    def contains(self, offset: int) -> bool:
        """Check whether a cursor offset falls inside this span (inclusive)."""
        return self.start_offset <= offset <= self.end_offset

    @property
    def length(self) -> int:
        """Number of source characters covered by the span."""
        return self.end_offset - self.start_offset + 1
