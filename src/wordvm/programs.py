"""Bundled example programs."""

from typing import List

from .codec import (
    Literal, assemble,
    HALT, SUB, DUP, JMP, JZ, PRN, PRNCHAR, LOAD, STOR,
)


def countdown(start: int = 10, address: int = 0) -> List[int]:
    """
    Print start-1 down to 0 using a counter kept in program data.

    Jump targets are one less than the instruction to resume at.
    """
    return assemble([
        start,       # 0
        address,     # 1
        STOR,        # 2   <- JMP 2 resumes at 3

        address,     # 3
        LOAD,        # 4

        1,           # 5
        SUB,         # 6

        DUP,         # 7
        address,     # 8
        STOR,        # 9

        DUP,         # 10
        PRN,         # 11

        15,          # 12
        JZ,          # 13  -> resumes at 16

        2,           # 14
        JMP,         # 15

        HALT,        # 16
    ])


def hello_world(text: str = "Hello world") -> List[int]:
    """Print text one character at a time with PRNCHAR."""
    instructions = []
    for char in text:
        codepoint = ord(char)
        if codepoint > 0xFFFF:
            raise ValueError(f"PRNCHAR prints one UTF-16 code unit, cannot print {char!r}")
        instructions += [Literal(codepoint), PRNCHAR]
    instructions.append(HALT)
    return assemble(instructions)
