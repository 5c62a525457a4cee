"""Copying programs into instruction memory and reading program files."""

import logging
import pathlib
from typing import Iterable, List, Union

from .codec import deserialize_program, UINT32_MAX
from .errors import InvalidProgram
from .memory import Memory, Region

logger = logging.getLogger(__name__)


def load_program(memory: Memory, words: Iterable[int]) -> int:
    """
    Copy words into the instruction region starting at its base.

    Each destination address is bounds checked, so a program longer than the
    region raises OutOfBounds(INSTRUCTION, ...) at the first word that does
    not fit. Words already copied stay in memory.

    Returns:
        Number of words loaded
    """
    base = memory.layout.instruction_base
    count = 0
    for i, word in enumerate(words):
        memory.write(Region.INSTRUCTION, base + i, word)
        count += 1
    logger.debug("Loaded %d words at %d", count, base)
    return count


def parse_hex_program(text: str) -> List[int]:
    """
    Parse one hex word per line. Blank lines and ``#`` comments are ignored.

    Raises:
        InvalidProgram: If a line is not a 32-bit hex number
    """
    words = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.split('#', 1)[0].strip()
        if not line:
            continue
        try:
            word = int(line, 16)
        except ValueError:
            raise InvalidProgram(f"Line {lineno}: not a hex word: {line!r}") from None
        if not (0 <= word <= UINT32_MAX):
            raise InvalidProgram(f"Line {lineno}: word out of 32-bit range: {line}")
        words.append(word)
    return words


def read_program_file(path: Union[str, pathlib.Path]) -> List[int]:
    """
    Read a program from disk.

    Files ending in ``.hex`` hold one hex word per line; anything else is
    taken as raw big-endian words.
    """
    path = pathlib.Path(path)
    if path.suffix == '.hex':
        return parse_hex_program(path.read_text())
    return deserialize_program(path.read_bytes())
