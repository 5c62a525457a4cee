from dataclasses import dataclass
from enum import IntEnum
from typing import Iterable, List, Union

from .errors import InvalidProgram

# =============================================================================
# Constants
# =============================================================================

UINT32_MAX = (1 << 32) - 1

TAG_SHIFT = 30

# 0xC0000000 = 1100 0000 0000 0000 0000 0000 0000 0000
TYPE_MASK = 0xC0000000

# 0x3FFFFFFF = 0011 1111 1111 1111 1111 1111 1111 1111
DATA_MASK = 0x3FFFFFFF

PAYLOAD_MAX = DATA_MASK

WORD_SIZE = 4


class Tag(IntEnum):
    """Type tag stored in bits 31-30 of every word."""
    POSITIVE_INTEGER = 0
    PRIMITIVE = 1
    NEGATIVE_INTEGER = 2
    UNDEFINED = 3


class Opcode(IntEnum):
    HALT = 0      # Ends run of machine
    ADD = 1       # Adds two numbers on stack
    SUB = 2       # Subtracts top of stack from the number below it
    MUL = 3       # Multiplies two numbers on stack
    DIV = 4       # Divides the number below top of stack by top of stack
    DUP = 5       # Duplicates top of stack
    JMP = 6       # Unconditional jump
    JZ = 7        # Jump if the value below the target is zero
    PRN = 8       # Prints top of stack as a decimal number
    PRNCHAR = 9   # Prints top of stack as a character
    LOAD = 10     # Pushes a word from program data
    STOR = 11     # Stores a word into program data


# =============================================================================
# Word Codec
# =============================================================================

def classify(word: int) -> Tag:
    """Extract the type tag (bits 31-30) of an encoded word."""
    return Tag((word & TYPE_MASK) >> TAG_SHIFT)


def payload(word: int) -> int:
    """Extract the 30-bit payload (bits 29-0) of an encoded word."""
    return word & DATA_MASK


def encode(tag: int, data: int) -> int:
    """Pack a tag and a payload into a 32-bit word."""
    if not (0 <= tag <= 3):
        raise ValueError(f"Tag must be 0-3, got {tag}")
    if not (0 <= data <= PAYLOAD_MAX):
        raise ValueError(f"Payload must be 0-0x{PAYLOAD_MAX:X}, got {data}")
    return (tag << TAG_SHIFT) | data


def is_literal(tag: Tag) -> bool:
    # Negative literals are pushed with their unsigned payload, same as positive ones.
    return tag in (Tag.POSITIVE_INTEGER, Tag.NEGATIVE_INTEGER)


# =============================================================================
# Instruction ADT
# =============================================================================

@dataclass(frozen=True)
class Literal:
    """Push a 30-bit value onto the stack."""
    value: int

    def __post_init__(self):
        if not (0 <= self.value <= PAYLOAD_MAX):
            raise ValueError(f"Literal value must be 0-0x{PAYLOAD_MAX:X}, got {self.value}")


@dataclass(frozen=True)
class NegativeLiteral:
    """Literal word carrying the negative tag. Executes exactly like Literal."""
    value: int

    def __post_init__(self):
        if not (0 <= self.value <= PAYLOAD_MAX):
            raise ValueError(f"Literal value must be 0-0x{PAYLOAD_MAX:X}, got {self.value}")


@dataclass(frozen=True)
class Primitive:
    """Primitive operation. The id is not checked here, only at dispatch."""
    opcode: int

    def __post_init__(self):
        if not (0 <= self.opcode <= PAYLOAD_MAX):
            raise ValueError(f"Opcode id must be 0-0x{PAYLOAD_MAX:X}, got {self.opcode}")

    def __repr__(self):
        try:
            return Opcode(self.opcode).name
        except ValueError:
            return f"Primitive({self.opcode})"


@dataclass(frozen=True)
class Reserved:
    """Word carrying the reserved tag 3."""
    data: int


Instruction = Union[Literal, NegativeLiteral, Primitive, Reserved]

HALT = Primitive(Opcode.HALT)
ADD = Primitive(Opcode.ADD)
SUB = Primitive(Opcode.SUB)
MUL = Primitive(Opcode.MUL)
DIV = Primitive(Opcode.DIV)
DUP = Primitive(Opcode.DUP)
JMP = Primitive(Opcode.JMP)
JZ = Primitive(Opcode.JZ)
PRN = Primitive(Opcode.PRN)
PRNCHAR = Primitive(Opcode.PRNCHAR)
LOAD = Primitive(Opcode.LOAD)
STOR = Primitive(Opcode.STOR)


def encode_instruction(instr: Instruction) -> int:
    match instr:
        case Literal(value=val):
            return encode(Tag.POSITIVE_INTEGER, val)
        case NegativeLiteral(value=val):
            return encode(Tag.NEGATIVE_INTEGER, val)
        case Primitive(opcode=op):
            return encode(Tag.PRIMITIVE, int(op))
        case Reserved(data=data):
            return encode(Tag.UNDEFINED, data)
        case _:
            raise ValueError(f"Unknown instruction: {instr}")


def decode_instruction(word: int) -> Instruction:
    """Turn a word back into an instruction. Total over all 32-bit words."""
    if not (0 <= word <= UINT32_MAX):
        raise ValueError(f"Word must be 0-0xFFFFFFFF, got {word}")
    data = payload(word)

    match classify(word):
        case Tag.POSITIVE_INTEGER:
            return Literal(data)
        case Tag.NEGATIVE_INTEGER:
            return NegativeLiteral(data)
        case Tag.PRIMITIVE:
            return Primitive(data)
        case _:
            return Reserved(data)


def assemble(instructions: Iterable[Union[Instruction, int]]) -> List[int]:
    """
    Encode instructions into a list of words.

    Plain ints are taken as positive literals, which keeps hand-written
    programs short: ``assemble([1, 2, ADD, HALT])``.
    """
    words = []
    for instr in instructions:
        if isinstance(instr, int):
            instr = Literal(instr)
        words.append(encode_instruction(instr))
    return words


# =============================================================================
# Serialization (Words <-> Bytes)
# =============================================================================

def serialize_program(words: Iterable[int]) -> bytes:
    """Serialize words as consecutive 4-byte big-endian values."""
    out = bytearray()
    for word in words:
        if not (0 <= word <= UINT32_MAX):
            raise ValueError(f"Word must be 0-0xFFFFFFFF, got {word}")
        out += word.to_bytes(WORD_SIZE, 'big')
    return bytes(out)


def deserialize_program(data: bytes) -> List[int]:
    """
    Deserialize bytes into a list of words.

    Raises:
        InvalidProgram: If the data ends in the middle of a word
    """
    if len(data) % WORD_SIZE:
        raise InvalidProgram(
            f"Truncated word at offset {len(data) - len(data) % WORD_SIZE}: "
            f"need {WORD_SIZE} bytes, have {len(data) % WORD_SIZE}"
        )
    return [
        int.from_bytes(data[offset:offset + WORD_SIZE], 'big')
        for offset in range(0, len(data), WORD_SIZE)
    ]
