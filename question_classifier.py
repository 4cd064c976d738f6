from __future__ import annotations

import re
from typing import Final, Optional

from models import QuestionTag, QuestionType

WH_WORDS: Final[frozenset[str]] = frozenset(
    {"who", "what", "where", "when", "why", "how", "which", "whose", "whom"}
)
AUXILIARY_VERBS: Final[frozenset[str]] = frozenset(
    {
        "do",
        "does",
        "did",
        "is",
        "are",
        "was",
        "were",
        "can",
        "could",
        "will",
        "would",
        "shall",
        "should",
        "may",
        "might",
        "must",
        "have",
        "has",
        "had",
    }
)
INDIRECT_OPENERS: Final[tuple[str, ...]] = (
    "i wonder",
    "i was wondering",
    "could you tell me",
    "do you know",
    "i'd like to know",
    "can you explain",
    "please explain",
)

_EDGE_PUNCTUATION = re.compile(r"^[^\w']+|[^\w']+$")


def _first_word(words: list[str]) -> str:
    if not words:
        return ""
    return _EDGE_PUNCTUATION.sub("", words[0])


def classify(utterance: str) -> Optional[QuestionTag]:
    """Tag an utterance as a question, or return None.

    Rules run in priority order and the first match wins: a trailing question
    mark, then the opening word of a 3+ word sentence, then indirect openers.
    """
    original = (utterance or "").strip()
    if not original:
        return None
    lowered = original.lower().replace("’", "'")
    words = lowered.split()
    first = _first_word(words)

    if lowered.endswith("?"):
        if first in WH_WORDS:
            question_type = QuestionType.WH_QUESTION
        elif first in AUXILIARY_VERBS:
            question_type = QuestionType.YES_NO
        else:
            question_type = QuestionType.DIRECT
        return QuestionTag(question_type, "Explicit question mark", original)

    if len(words) > 2:
        if first in WH_WORDS:
            return QuestionTag(QuestionType.WH_QUESTION, f"Starts with '{first}'", original)
        if first in AUXILIARY_VERBS:
            return QuestionTag(QuestionType.YES_NO, f"Starts with '{first}'", original)

    for opener in INDIRECT_OPENERS:
        if re.match(rf"{re.escape(opener)}\b", lowered):
            return QuestionTag(QuestionType.INDIRECT, f"Starts with '{opener}'", original)

    return None
