"""
Session self-assessment extraction

When analysis is requested, the model is told to end its reply with

    [ANALYSIS]{"understanding": "...", "topics": [...], "weakAreas": [...], "strongAreas": [...]}[/ANALYSIS]

This module pulls that block out of the reply, validates it, and returns the
reply text the student should see.
"""

import json
import logging
import re
from typing import List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

logger = logging.getLogger(__name__)

ANALYSIS_BLOCK = re.compile(r"\[ANALYSIS\](.*?)\[/ANALYSIS\]", re.DOTALL)

UNDERSTANDING_LEVELS = ("weak", "average", "good", "excellent")


class SessionAnalysis(BaseModel):
    """Model's assessment of the student for one exchange."""

    model_config = ConfigDict(populate_by_name=True)

    understanding: Literal["weak", "average", "good", "excellent"]
    topics: List[str] = Field(default_factory=list)
    weak_areas: List[str] = Field(default_factory=list, alias="weakAreas")
    strong_areas: List[str] = Field(default_factory=list, alias="strongAreas")

    @field_validator("understanding", mode="before")
    @classmethod
    def _normalize_level(cls, value):
        if isinstance(value, str):
            return value.strip().lower()
        return value

    def to_response(self) -> dict:
        return self.model_dump(by_alias=True)


def extract_session_analysis(reply: str) -> Tuple[str, Optional[SessionAnalysis]]:
    """
    Split a raw model reply into (visible_reply, analysis).

    A missing or malformed block leaves the reply untouched and yields no
    analysis; the malformed case is logged.
    """
    match = ANALYSIS_BLOCK.search(reply)
    if not match:
        return reply, None

    try:
        analysis = SessionAnalysis.model_validate(json.loads(match.group(1)))
    except (json.JSONDecodeError, ValidationError) as e:
        logger.error(f"[SessionAnalysis] Failed to parse analysis block: {e}")
        return reply, None

    visible = (reply[:match.start()] + reply[match.end():]).strip()
    return visible, analysis
