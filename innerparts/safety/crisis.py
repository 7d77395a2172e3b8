"""Fast keyword-based crisis detection: no model call, no cooldown, no feature flag"""

import re
import unicodedata
from typing import Optional

# Zero-width characters that can split a phrase invisibly (NFKC already maps NBSP to a space)
_ZERO_WIDTH = re.compile(r"[\u200B\u200C\u200D\uFEFF\u2060]")

CRISIS_PATTERNS = [
    (r"\bwant\s+to\s+die\b", "want to die"),
    (r"\bwant\s+to\s+kill\s+(myself|me)\b", "want to kill myself"),
    (r"\bkill\s+myself\b", "kill myself"),
    (r"\bend\s+(my|this)\s+life\b", "end my life"),
    (r"\bend\s+it\s+all\b", "end it all"),
    (r"\bsuicid", "suicide"),
    (r"\bdon'?t\s+want\s+to\s+(be\s+here|live|exist|be\s+alive)\b", "don't want to live"),
    (r"\bwish\s+I\s+(was|were)\s+dead\b", "wish I were dead"),
    (r"\bbetter\s+off\s+dead\b", "better off dead"),
    (r"\bno\s+reason\s+to\s+(live|go\s+on|keep\s+going)\b", "no reason to live"),
    (r"\bshould\s+I?\s*(just\s+)?die\b", "should just die"),
    (r"\bI\s+should\s+die\b", "I should die"),
    (r"\brest\s+forever\b", "rest forever"),
    (r"\bwith\s+jesus\b", "with jesus"),
    (r"\bjump\s+off\b", "jump off"),
    (r"\bcut\s+(myself|my\s+wrists?)\b", "cut myself"),
    (r"\btake\s+(all\s+)?(the\s+)?pills\b", "take the pills"),
    (r"\bswallow\s+(all\s+)?(the\s+)?pills\b", "swallow the pills"),
    (r"\bhang\s+myself\b", "hang myself"),
    (r"\bshoot\s+myself\b", "shoot myself"),
    # Abbreviations and slang
    (r"\bkms\b", "kms"),
    (r"\bkys\b", "kys"),
    (r"\bctb\b", "ctb"),
    (r"\bslit\s+(my\s+)?wrists?\b", "slit wrists"),
    (r"\boverdose\b", "overdose"),
    (r"\bwanna\s+die\b", "wanna die"),
    (r"\bready\s+to\s+die\b", "ready to die"),
    (r"\bplanning\s+to\s+(end|kill|die)\b", "planning to end"),
    (r"\bno\s+point\s+in\s+living\b", "no point in living"),
    (r"\blife\s+isn'?t\s+worth\b", "life isn't worth"),
    (r"\bcan'?t\s+do\s+this\s+anymore\b", "can't do this anymore"),
    (r"\bdon'?t\s+want\s+to\s+wake\s+up\b", "don't want to wake up"),
    (r"\bhurt\s+myself\b", "hurt myself"),
    (r"\bself[- ]?harm\b", "self-harm"),
    (r"\bdrown\s+myself\b", "drown myself"),
]

_COMPILED = [(re.compile(pattern, re.IGNORECASE), label) for pattern, label in CRISIS_PATTERNS]


def normalize_for_crisis_detection(text: str) -> str:
    """NFKC-normalize (fullwidth/compatibility forms) and strip zero-width characters"""
    return _ZERO_WIDTH.sub("", unicodedata.normalize("NFKC", text))


def match_crisis_pattern(text: str) -> Optional[str]:
    """
    Label of the first crisis pattern found in ``text``, or None.

    A zero-width character may stand in for a letter break or for a space,
    so both readings are checked.
    """
    variants = (
        normalize_for_crisis_detection(text),
        _ZERO_WIDTH.sub(" ", unicodedata.normalize("NFKC", text)),
    )
    for pattern, label in _COMPILED:
        if any(pattern.search(variant) for variant in variants):
            return label
    return None


def detect_crisis_keywords(text: str) -> bool:
    return match_crisis_pattern(text) is not None
