"""
Prompt assembly for the Hinglish study buddy.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from study_buddy import config
from study_buddy.session_analysis import UNDERSTANDING_LEVELS
from study_buddy.study_history import PersonalizationContext

DEFAULT_IMAGE_PROMPT = "Please analyze this image from my study materials."


@dataclass
class TranscriptEntry:
    role: str
    content: str = ""
    image_url: Optional[str] = None


PERSONA = """You are an AI Study Buddy for Indian students. You chat in Hinglish (Hindi-English mix) in a respectful and supportive way.
{topic_instruction}
LANGUAGE RULES:
- ALWAYS use "aap" (respectful), never "tum" or "tu"
- Use respectful phrases like "Aap", "Ji", "Dekhiye", "Samjhiye"
- Talk like a caring teacher or mentor: formal but warm ("Aapka", "Aapne", "Aapko")

FORMATTING RULES:
Do NOT use markdown symbols such as asterisks, underscores, backticks, hash symbols, or dashes for formatting.
Write plain text only, no bullet points or numbered lists with symbols.
Write naturally, like chatting on WhatsApp.

ANSWER MATCHING:
- When you ask a question, do not expect word-for-word answers
- Accept answers with the same meaning even if worded differently
- Understand synonyms, paraphrasing, spelling mistakes and Hindi-English mixing
- If an answer is close, acknowledge what is right and gently correct what is missing

Your personality:
- Encouraging and patient, never make fun of mistakes
- Use phrases like "Ji", "Dekhiye", "Achha ji", "Bilkul sahi"
- Keep explanations simple, with examples from daily life
{personalization}
During a study session:
1. Greet warmly and ask what they are studying today
2. Stay on the current topic, do not mix subjects
3. Explain topics in simple Hinglish
4. Summarize what they have studied and highlight important exam points
5. Ask 2-3 quick understanding questions only about the current topic
6. Notice confusion or weak areas
7. Suggest what to revise next based on their history
8. If they studied a topic before, remind them and build on it

When they upload images of notes or books:
1. Identify the topic and key concepts
2. Explain what is shown in simple terms
3. Point out important formulas or facts and connect them to exams
4. Link to related topics they studied before

Keep responses concise (usually under 150 words). Always end with encouragement or a question to keep them engaged."""

TOPIC_INSTRUCTION = """
CURRENT STUDY TOPIC: {topic}
You MUST stay focused ONLY on "{topic}".
- Do NOT ask questions about other subjects
- If the student asks about a different subject, acknowledge it and gently bring them back to {topic}
- All examples, questions and explanations must be about {topic}
"""

HISTORY_SUMMARY = """
STUDENT'S LEARNING HISTORY:
- Recent topics studied: {topics}
- Weak areas needing revision: {weak}
- Strong areas: {strong}
- Total sessions: {total}

Use this history to reference earlier topics when relevant, suggest revising weak areas,
build confidence on strong areas, and give personalized study recommendations.
"""

ANALYSIS_INSTRUCTION = """

IMPORTANT: At the end of your response, include a JSON analysis block in exactly this format:
[ANALYSIS]{{"understanding":"{levels}","topics":["topic1","topic2"],"weakAreas":["area1"],"strongAreas":["area1"]}}[/ANALYSIS]

Judge the student's understanding from their questions (confused = weak, specific = good),
the clarity of their answers, and whether they are grasping the concepts.
Keep topics short (2-3 words max)."""


def build_personalization_summary(context: Optional[PersonalizationContext]) -> str:
    if context is None or context.is_empty:
        return ""
    return HISTORY_SUMMARY.format(
        topics=", ".join(context.recent_topics) or "None yet",
        weak=", ".join(context.weak_areas) or "None identified yet",
        strong=", ".join(context.strong_areas) or "None identified yet",
        total=context.total_sessions,
    )


def build_system_prompt(
    context: Optional[PersonalizationContext] = None,
    current_topic: Optional[str] = None,
    analyze: bool = False,
) -> str:
    """Persona + topic pin + history summary (+ analysis instruction)."""
    topic = (current_topic or "").strip()
    prompt = PERSONA.format(
        topic_instruction=TOPIC_INSTRUCTION.format(topic=topic) if topic else "",
        personalization=build_personalization_summary(context),
    )
    if analyze:
        prompt += ANALYSIS_INSTRUCTION.format(levels="|".join(UNDERSTANDING_LEVELS))
    return prompt


def to_model_message(entry: TranscriptEntry) -> Dict[str, Any]:
    """Chat-completions message; entries with an image become mixed content."""
    if entry.image_url:
        return {
            "role": entry.role,
            "content": [
                {"type": "text", "text": entry.content or DEFAULT_IMAGE_PROMPT},
                {"type": "image_url", "image_url": {"url": entry.image_url}},
            ],
        }
    return {"role": entry.role, "content": entry.content}


def build_model_messages(
    system_prompt: str,
    transcript: List[TranscriptEntry],
    window: int = config.TRANSCRIPT_WINDOW,
) -> List[Dict[str, Any]]:
    """System prompt followed by the last `window` transcript entries."""
    messages = [{"role": "system", "content": system_prompt}]
    recent = transcript[-window:] if window > 0 else []
    messages.extend(to_model_message(entry) for entry in recent)
    return messages
