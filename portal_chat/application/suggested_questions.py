"""
Name: Suggested Questions

Responsibilities:
  - Offer starter questions for a new chat, derived from the sections that
    actually exist in the subject's index (no question about content the
    CV does not have).

Collaborators:
  - domain.repositories.VectorStore (get_index)
"""

from __future__ import annotations

from typing import Final, List

from ..domain.repositories import VectorStore

_QUESTIONS_BY_SECTION: Final[dict[str, str]] = {
    "summary": "Can you give me a quick overview of your background?",
    "experience": "What is your most recent professional experience?",
    "work_experience": "What is your most recent professional experience?",
    "skills": "What programming languages and tools do you know?",
    "technical_skills": "What programming languages and tools do you know?",
    "education": "Where did you study?",
    "projects": "What projects are you most proud of?",
    "achievements": "What are your main achievements?",
    "certifications": "Which certifications do you hold?",
    "languages": "Which languages do you speak?",
}
_GENERIC: Final[tuple[str, ...]] = (
    "What do you do?",
    "What are you looking for in your next role?",
)
DEFAULT_LIMIT: Final[int] = 4


def suggest_questions(
    vector_store: VectorStore, subject_id: str, limit: int = DEFAULT_LIMIT
) -> List[str]:
    index = vector_store.get_index(subject_id)
    sections = index.sections if index is not None else ()

    questions: List[str] = []
    for section in sections:
        question = _QUESTIONS_BY_SECTION.get(section)
        if question and question not in questions:
            questions.append(question)

    for question in _GENERIC:
        if question not in questions:
            questions.append(question)

    return questions[: max(0, limit)]
