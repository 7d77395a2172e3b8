"""Small text helpers shared by the suggestion engines"""

import re
from typing import List, Optional

_NON_LETTER = re.compile(r"[^a-z\s]")
_SENTENCE = re.compile(r"[^.!?]+[.!?]+")


def extract_words(text: str) -> List[str]:
    """Lowercase words longer than three letters, punctuation stripped"""
    cleaned = _NON_LETTER.sub("", text.lower())
    return [w for w in cleaned.split() if len(w) > 3]


def split_sentences(text: str) -> List[str]:
    """Sentences that end in terminal punctuation; a trailing fragment is dropped"""
    return _SENTENCE.findall(text)


def word_overlap(current_words: List[str], candidate_words: set[str]) -> int:
    """Count of current words (with repeats) that appear in the candidate set"""
    return sum(1 for w in current_words if w in candidate_words)


def bounded_passage(
    sentences: List[str],
    start: int,
    min_length: int = 20,
    max_length: int = 300,
) -> Optional[str]:
    """Join up to two sentences from ``start``; None if outside the length bounds"""
    passage = " ".join(s.strip() for s in sentences[start:start + 2]).strip()
    if len(passage) < min_length or len(passage) > max_length:
        return None
    return passage
