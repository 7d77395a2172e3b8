"""
Annotation side-channel: splitting display text from the structured payload.

A persona reply may end with a delimiter line followed by a JSON object:

    Hi there.
    ---annotations---
    {"highlights": ["there"], "ghostText": " and then"}

Everything before the delimiter is shown to the writer as it streams; the
payload after it never is.
"""

import json
import re
from typing import AsyncIterator, Optional, Tuple

from loguru import logger

from innerparts.core.models import Annotation

DELIMITER = "---annotations---"
MAX_HIGHLIGHTS = 5
MAX_GHOST_LENGTH = 80

_JSON_OBJECT = re.compile(r"\{[\s\S]*\}")

# Sentence-final punctuation for Latin/Cyrillic, CJK and Devanagari scripts.
# A period preceded by another period is an ellipsis, not a sentence end.
_SENTENCE_END = re.compile(r"(?:(?<!\.)[.。]|[!?！？।])['\"“”‘’»)\]]*$")


def is_delimiter_prefix(buffer: str) -> bool:
    if len(buffer) > len(DELIMITER):
        return False
    return DELIMITER.startswith(buffer)


class AnnotationDemuxer:
    """
    Character-level state machine separating display text from the payload.

    ``feed`` takes each streamed token and returns the text that may be shown
    now. Characters that could be the start of the delimiter are held back
    until they either complete it or prove to be a false alarm. Whitespace
    directly before a delimiter candidate is held too, so the display text
    does not end in the newline that introduces the payload.

    With ``enabled=False`` every token passes straight through.
    """

    def __init__(self, enabled: bool = True) -> None:
        self.enabled = enabled
        self.detected = False
        self._raw: list[str] = []
        self._display: list[str] = []
        self._buffer = ""
        self._held_space = ""

    @property
    def raw_text(self) -> str:
        return "".join(self._raw)

    @property
    def display_text(self) -> str:
        return "".join(self._display)

    def feed(self, token: str) -> str:
        self._raw.append(token)
        if not self.enabled:
            self._display.append(token)
            return token
        if self.detected:
            return ""

        out: list[str] = []
        for char in token:
            if self.detected:
                break
            self._feed_char(char, out)

        emitted = "".join(out)
        self._display.append(emitted)
        return emitted

    def _feed_char(self, char: str, out: list[str]) -> None:
        if self._buffer:
            candidate = self._buffer + char
            if is_delimiter_prefix(candidate):
                self._buffer = candidate
                if candidate == DELIMITER:
                    logger.debug("Annotation delimiter detected")
                    self.detected = True
                    self._buffer = ""
                    self._held_space = ""
                return
            # False alarm. A tail of the candidate may still open the delimiter ("----annotations---").
            for cut in range(1, len(candidate)):
                if is_delimiter_prefix(candidate[cut:]):
                    out.append(self._held_space + candidate[:cut])
                    self._held_space = ""
                    self._buffer = candidate[cut:]
                    return
            out.append(self._held_space + self._buffer)
            self._held_space = ""
            self._buffer = ""

        if char.isspace():
            self._held_space += char
        elif is_delimiter_prefix(char):
            self._buffer = char
        else:
            out.append(self._held_space + char)
            self._held_space = ""

    def finish(self) -> str:
        """Flush anything still held once the stream has ended"""
        if not self.enabled or self.detected:
            return ""
        remainder = self._held_space + self._buffer
        self._held_space = ""
        self._buffer = ""
        self._display.append(remainder)
        return remainder

    async def stream(self, tokens: AsyncIterator[str]) -> AsyncIterator[str]:
        """Yield display chunks from ``tokens`` in order; empty chunks are skipped"""
        async for token in tokens:
            shown = self.feed(token)
            if shown:
                yield shown
        tail = self.finish()
        if tail:
            yield tail

    def result(self) -> Tuple[str, Optional[Annotation]]:
        """Thought text and parsed annotation for the completed stream"""
        if not self.detected:
            return self.display_text.strip(), None
        return parse_annotations(self.raw_text)


def parse_annotations(full_text: str) -> Tuple[str, Optional[Annotation]]:
    """
    Split a complete reply into thought text and annotation payload.

    Malformed or empty payloads yield None; they are never an error.
    """
    index = full_text.find(DELIMITER)
    if index == -1:
        return full_text, None

    thought_text = full_text[:index].strip()
    payload = full_text[index + len(DELIMITER):].strip()

    match = _JSON_OBJECT.search(payload)
    if not match:
        return thought_text, None

    try:
        parsed = json.loads(match.group(0))
    except ValueError as e:
        logger.debug(f"Ignoring malformed annotation payload: {e}")
        return thought_text, None
    if not isinstance(parsed, dict):
        return thought_text, None

    highlights = []
    raw_highlights = parsed.get("highlights")
    if isinstance(raw_highlights, list):
        highlights = [h for h in raw_highlights if isinstance(h, str) and h.strip()][:MAX_HIGHLIGHTS]

    ghost_text = None
    raw_ghost = parsed.get("ghostText")
    if isinstance(raw_ghost, str) and raw_ghost.strip():
        ghost = raw_ghost.rstrip()
        if not ghost.startswith(" "):
            ghost = " " + ghost
        ghost_text = ghost[:MAX_GHOST_LENGTH]

    annotation = Annotation(highlights=highlights, ghost_text=ghost_text)
    if annotation.is_empty:
        return thought_text, None
    return thought_text, annotation


def fix_ghost_capitalization(ghost: str, writer_text: str) -> str:
    """
    Case the first letter of ghost text to fit the writer's sentence position.

    Uppercase after sentence-final punctuation, lowercase otherwise. Ghosts that
    start with a non-letter, and letters without case (CJK, Thai, Devanagari),
    come back unchanged.
    """
    if not ghost:
        return ghost

    stripped = ghost.lstrip()
    if not stripped or not stripped[0].isalpha():
        return ghost

    leading = ghost[: len(ghost) - len(stripped)]
    first, rest = stripped[0], stripped[1:]
    if _SENTENCE_END.search(writer_text.rstrip()):
        first = first.upper()
    else:
        first = first.lower()
    return leading + first + rest
