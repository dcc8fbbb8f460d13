"""Data models stored in the preference document."""

from pydantic import BaseModel, Field

# Reserved preference key holding the learned flows
LEARNED_FLOWS_KEY = "_learned_flows"


class LearnedFlow(BaseModel):
    """A condensed instruction pattern and how it was completed.

    Attributes:
        pattern: Normalized instruction that succeeded.
        steps: Short description of what was done.
        timestamp: Epoch milliseconds of the last success.
    """

    pattern: str = Field(..., min_length=1)
    steps: str
    timestamp: int = Field(..., ge=0)
