"""
Study history and personalization

Reads a student's recent study sessions from Supabase and folds them into a
PersonalizationContext for the tutor prompt. Also writes the model's session
analysis back to the study session row.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

from study_buddy import config
from study_buddy.session_analysis import SessionAnalysis

logger = logging.getLogger(__name__)

HISTORY_COLUMNS = "topic, subject, understanding_level, weak_areas, strong_areas, created_at"


@dataclass
class PersonalizationContext:
    """Aggregate of a student's recent sessions. Derived per request, never stored."""
    recent_topics: List[str] = field(default_factory=list)
    weak_areas: List[str] = field(default_factory=list)
    strong_areas: List[str] = field(default_factory=list)
    total_sessions: int = 0

    @property
    def is_empty(self) -> bool:
        return self.total_sessions == 0

    def to_response(self) -> Dict[str, List[str]]:
        return {
            "recentTopics": self.recent_topics,
            "weakAreas": self.weak_areas,
            "strongAreas": self.strong_areas,
        }


def _unique(values: Iterable[Optional[str]], limit: int) -> List[str]:
    """First-seen order, no blanks, at most `limit` items."""
    seen: List[str] = []
    for value in values:
        if value and value not in seen:
            seen.append(value)
            if len(seen) >= limit:
                break
    return seen


def build_personalization(
    sessions: List[Dict[str, Any]],
    tag_limit: int = config.HISTORY_TAG_LIMIT,
) -> PersonalizationContext:
    """
    Aggregate sessions (newest first) into a PersonalizationContext.

    Topics are deduplicated; weak/strong tags are unioned across sessions.
    Each list is capped at `tag_limit`.
    """
    sessions = sessions[:config.HISTORY_SESSION_LIMIT]
    return PersonalizationContext(
        recent_topics=_unique((s.get("topic") for s in sessions), tag_limit),
        weak_areas=_unique((a for s in sessions for a in (s.get("weak_areas") or [])), tag_limit),
        strong_areas=_unique((a for s in sessions for a in (s.get("strong_areas") or [])), tag_limit),
        total_sessions=len(sessions),
    )


class StudyHistoryStore:
    """Supabase access for the study_sessions table."""

    def __init__(self, supabase_client):
        self.supabase = supabase_client

    async def recent_sessions(self, student_id: str, limit: int = config.HISTORY_SESSION_LIMIT) -> List[Dict[str, Any]]:
        result = self.supabase.table("study_sessions") \
            .select(HISTORY_COLUMNS) \
            .eq("student_id", student_id) \
            .order("created_at", desc=True) \
            .limit(limit) \
            .execute()
        return result.data or []

    async def load_personalization(self, student_id: str) -> PersonalizationContext:
        """
        Personalization for `student_id`.

        A failed fetch is logged and yields an empty context so the chat can
        continue without history.
        """
        try:
            sessions = await self.recent_sessions(student_id)
        except Exception as e:
            logger.error(f"❌ [StudyHistory] Error fetching student history: {e}", exc_info=True)
            return PersonalizationContext()

        context = build_personalization(sessions)
        logger.info(
            f"[StudyHistory] Loaded history for {student_id[:8]}...: "
            f"{context.total_sessions} sessions, weak={context.weak_areas}, strong={context.strong_areas}"
        )
        return context

    async def record_analysis(self, session_id: str, analysis: SessionAnalysis) -> bool:
        """Store the model's assessment on the study session row. Non-fatal."""
        try:
            self.supabase.table("study_sessions") \
                .update({
                    "understanding_level": analysis.understanding,
                    "weak_areas": analysis.weak_areas,
                    "strong_areas": analysis.strong_areas,
                }) \
                .eq("id", session_id) \
                .execute()
            return True
        except Exception as e:
            logger.warning(f"⚠️ [StudyHistory] Could not save session analysis: {e}")
            return False
