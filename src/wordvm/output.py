"""Output sinks for PRN and PRNCHAR."""

import sys
from typing import List, Optional, Protocol, TextIO

SURROGATE_LOW = 0xD800
SURROGATE_HIGH = 0xDFFF
REPLACEMENT_CHARACTER = 0xFFFD


class OutputSink(Protocol):
    def write_text(self, text: str) -> None: ...

    def write_char(self, codepoint: int) -> None: ...


class StreamSink:
    """Writes straight to a text stream (stdout by default)."""

    def __init__(self, stream: Optional[TextIO] = None):
        self.stream = stream if stream is not None else sys.stdout

    def write_text(self, text: str) -> None:
        self.stream.write(text)
        self.stream.flush()

    def write_char(self, codepoint: int) -> None:
        # Lone surrogates cannot be encoded, so they print as U+FFFD.
        if SURROGATE_LOW <= codepoint <= SURROGATE_HIGH:
            codepoint = REPLACEMENT_CHARACTER
        self.write_text(chr(codepoint))


class BufferSink:
    """Collects output in memory."""

    def __init__(self):
        self.chunks: List[str] = []

    def write_text(self, text: str) -> None:
        self.chunks.append(text)

    def write_char(self, codepoint: int) -> None:
        self.chunks.append(chr(codepoint))

    @property
    def text(self) -> str:
        return ''.join(self.chunks)
