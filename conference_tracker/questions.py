"""Curated questions to ask companies at their booths."""

from __future__ import annotations

import random as _random

from .records import BoothQuestion, new_record_id

BOOTH_QUESTIONS: dict[str, tuple[str, ...]] = {
    "culture": (
        "What's your company culture like?",
        "How would you describe your team dynamics?",
        "What do you value most in your employees?",
        "How do you support work-life balance?",
        "What makes your company unique?",
    ),
    "technical": (
        "What tech stack do you use?",
        "What's your approach to code quality and testing?",
        "How do you handle technical debt?",
        "What development methodologies do you follow?",
        "What's your deployment process like?",
    ),
    "career_growth": (
        "What does career progression look like here?",
        "Do you offer mentorship programs?",
        "What learning and development opportunities are available?",
        "How do you support professional growth?",
        "What's the typical career path for this role?",
    ),
    "work_environment": (
        "Do you offer remote work options?",
        "What's your office setup like?",
        "How many people are on the team?",
        "What's a typical day like in this role?",
        "How do teams collaborate?",
    ),
    "hiring": (
        "What's your interview process?",
        "What are you looking for in candidates?",
        "What's the timeline for hiring?",
        "When do you expect to make a decision?",
        "What are the next steps?",
    ),
    "benefits": (
        "What benefits do you offer?",
        "Do you provide equity/stock options?",
        "What's your PTO policy?",
        "Do you offer relocation assistance?",
        "What's the salary range for this position?",
    ),
    "impact": (
        "What projects would I work on?",
        "What's the biggest challenge your team faces?",
        "How do you measure success?",
        "What impact can I make in the first 6 months?",
        "What are your company's goals for this year?",
    ),
}

ALL_QUESTIONS: tuple[str, ...] = tuple(q for group in BOOTH_QUESTIONS.values() for q in group)


def random_question(rng: _random.Random | None = None) -> str:
    return (rng or _random).choice(ALL_QUESTIONS)


def random_questions(count: int = 3, rng: _random.Random | None = None) -> list[str]:
    """Return ``count`` distinct questions, capped at the size of the bank."""

    if count <= 0:
        return []
    return (rng or _random).sample(ALL_QUESTIONS, min(count, len(ALL_QUESTIONS)))


def new_booth_question(
    qtype: str = "short",
    *,
    random: bool = False,
    rng: _random.Random | None = None,
) -> BoothQuestion:
    """Create a blank booth question, optionally pre-filled from the bank."""

    text = random_question(rng) if random else ""
    return BoothQuestion(id=new_record_id(), question=text, answer="", type=qtype)


__all__ = [
    "ALL_QUESTIONS",
    "BOOTH_QUESTIONS",
    "new_booth_question",
    "random_question",
    "random_questions",
]
