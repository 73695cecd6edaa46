"""
Decision schemas.

A Decision is what a participant commits to during the decision window.
A DecisionProcessingResult is what one resolution step hands back to the
TurnController, which reveals it to the audience.
"""

from datetime import datetime

from pydantic import BaseModel, Field


class Decision(BaseModel):
    """
    A participant's validated choice for the current turn.

    Island games fill target_id, auction silent offers fill amount.
    The timestamp breaks ties between equal silent offers.
    """
    target_id: str | None = None
    amount: int | None = None
    raw: str = ""
    timestamp: datetime = Field(default_factory=datetime.now)


class DecisionProcessingResult(BaseModel):
    """
    Outcome of a single resolution step.

    continue_processing is False only when nothing remains to resolve
    this turn. payload carries structured facts about the step (who voted
    for whom, which piece sold) for renderers and tests.
    """
    summary: str
    continue_processing: bool = False
    extra_summaries: list[str] = Field(default_factory=list)
    payload: dict = Field(default_factory=dict)
    skipped: bool = False  # True when the step was dropped as corrupt
