"""
Tutor Session Pipeline

One chat turn of the study buddy:
1. per-student request rate limit
2. personalization from recent study sessions (best effort)
3. system prompt + last few transcript entries
4. primary model call, single fallback on empty content
5. optional [ANALYSIS] block extraction (and persistence)
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

from study_buddy.ai_gateway import AIGateway
from study_buddy.errors import RateLimitError
from study_buddy.prompts import TranscriptEntry, build_model_messages, build_system_prompt
from study_buddy.rate_limiter import RequestRateLimiter
from study_buddy.session_analysis import SessionAnalysis, extract_session_analysis
from study_buddy.study_history import PersonalizationContext, StudyHistoryStore

logger = logging.getLogger(__name__)

# Shown to the student whenever a turn fails
FALLBACK_REPLY = "Oops! Kuch technical problem ho gaya. Thodi der baad try kariye! 🙏"
SLOW_DOWN_REPLY = "Thoda rukiye ji! Bahut fast messages aa rahe hain. Ek minute mein try kariye. 🙏"


def fallback_reply_for(error: Exception) -> str:
    if isinstance(error, RateLimitError):
        return SLOW_DOWN_REPLY
    return FALLBACK_REPLY


@dataclass
class TutorReply:
    response: str
    session_analysis: Optional[SessionAnalysis] = None
    student_history: PersonalizationContext = field(default_factory=PersonalizationContext)

    def to_response(self) -> Dict[str, Any]:
        return {
            "response": self.response,
            "sessionAnalysis": self.session_analysis.to_response() if self.session_analysis else None,
            "studentHistory": self.student_history.to_response(),
        }


class TutorPipeline:
    """Hinglish study buddy chat turn."""

    def __init__(
        self,
        gateway: AIGateway,
        history_store: Optional[StudyHistoryStore] = None,
        rate_limiter: Optional[RequestRateLimiter] = None,
    ):
        self.gateway = gateway
        self.history_store = history_store
        self.rate_limiter = rate_limiter or RequestRateLimiter()

    async def handle(
        self,
        transcript: List[TranscriptEntry],
        student_id: Optional[str] = None,
        current_topic: Optional[str] = None,
        analyze: bool = False,
        session_id: Optional[str] = None,
    ) -> TutorReply:
        if student_id and not self.rate_limiter.allow(student_id):
            logger.warning(f"⚠️ [TutorPipeline] Chat rate limit hit for student {student_id[:8]}...")
            raise RateLimitError("Rate limit exceeded. Please wait a moment before sending more messages.")

        logger.info(f"[TutorPipeline] Processing study chat request with {len(transcript)} messages")

        context = PersonalizationContext()
        if student_id and self.history_store is not None:
            context = await self.history_store.load_personalization(student_id)

        system_prompt = build_system_prompt(context, current_topic, analyze)
        messages = build_model_messages(system_prompt, transcript)

        raw_reply = await self.gateway.complete_with_fallback(messages)

        reply, analysis = raw_reply, None
        if analyze:
            reply, analysis = extract_session_analysis(raw_reply)
            if analysis and session_id and self.history_store is not None:
                await self.history_store.record_analysis(session_id, analysis)

        logger.info("✅ [TutorPipeline] AI response received")
        return TutorReply(response=reply, session_analysis=analysis, student_history=context)
