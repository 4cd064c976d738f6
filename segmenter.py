from __future__ import annotations

import re
from typing import Callable, Final

EOS_MARKS: Final[str] = ".?!。？！"
# Roughly a few spoken sentences of caption text.
MEDIUM_THRESHOLD: Final[int] = 160

TextTransform = Callable[[str], str]

_SPLIT_ACRONYM = re.compile(r"\b[A-Z](?:[ \t]*\.[ \t]*[A-Z]\b)+")
_ACRONYM_BEFORE_WORD = re.compile(r"\b([A-Z]{2,})(?=[A-Z][a-z])")
_PUNCTUATION_SPACE = re.compile(r"([.!?,])[ \t]*(?=[A-Za-z])")
_WIDE_PUNCTUATION_SPACE = re.compile(r"[ \t]*([。！？，、；：])[ \t]*")
_NEWLINE_RUN = re.compile(r"[ \t]*(?:\r?\n[ \t]*)+")


def join_split_acronyms(text: str) -> str:
    """U. S. A -> USA. Any dot after the last letter is left in place."""
    return _SPLIT_ACRONYM.sub(lambda match: re.sub(r"[\s.]", "", match.group(0)), text)


def separate_acronym_from_word(text: str) -> str:
    """USAToday -> USA Today."""
    return _ACRONYM_BEFORE_WORD.sub(r"\1 ", text)


def space_after_punctuation(text: str) -> str:
    return _PUNCTUATION_SPACE.sub(r"\1 ", text)


def tighten_wide_punctuation(text: str) -> str:
    return _WIDE_PUNCTUATION_SPACE.sub(r"\1", text)


def collapse_newlines(text: str, threshold: int = MEDIUM_THRESHOLD) -> str:
    if len(text) > threshold:
        return _NEWLINE_RUN.sub(" ", text)
    return _NEWLINE_RUN.sub("\n", text)


NORMALIZERS: Final[tuple[TextTransform, ...]] = (
    join_split_acronyms,
    separate_acronym_from_word,
    space_after_punctuation,
    tighten_wide_punctuation,
)


def normalize(text: str, threshold: int = MEDIUM_THRESHOLD) -> str:
    for transform in NORMALIZERS:
        text = transform(text)
    return collapse_newlines(text, threshold)


def latest_fragment(text: str) -> str:
    """Return the sentence currently being spoken.

    When the text already ends on an EOS mark the fragment is the last full
    sentence, otherwise it is whatever follows the last EOS mark.
    """
    text = text.rstrip()
    if not text:
        return ""
    search_end = len(text) - 1 if text[-1] in EOS_MARKS else len(text)
    boundary = -1
    for index in range(search_end - 1, -1, -1):
        if text[index] in EOS_MARKS:
            boundary = index
            break
    return text[boundary + 1 :].strip()


def extract(raw: str, previous_fragment: str, threshold: int = MEDIUM_THRESHOLD) -> tuple[str, bool]:
    if not raw or not raw.strip():
        return previous_fragment, False
    fragment = latest_fragment(normalize(raw, threshold))
    # Bare punctuation is not an utterance.
    if not any(char.isalnum() for char in fragment):
        return previous_fragment, False
    return fragment, fragment != previous_fragment.strip()


class CaptionSegmenter:
    def __init__(self, threshold: int = MEDIUM_THRESHOLD) -> None:
        self._threshold = threshold
        self.previous_fragment = ""

    def extract(self, raw: str) -> tuple[str, bool]:
        fragment, changed = extract(raw, self.previous_fragment, self._threshold)
        if changed:
            self.previous_fragment = fragment
        return fragment, changed

    def reset(self) -> None:
        self.previous_fragment = ""
