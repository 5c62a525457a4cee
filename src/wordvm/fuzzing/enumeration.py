"""
Enumeration-based test generation for WordVM.

This module provides exhaustive test generation by systematically enumerating
all possible programs within bounded model spaces. Unlike probabilistic fuzzing,
enumeration provides guaranteed coverage of the bounded model.
"""

from typing import Iterator, List

from wordvm.codec import (
    Literal, NegativeLiteral, Primitive, Opcode, assemble, PAYLOAD_MAX,
    DIV, DUP, HALT, JMP, JZ, LOAD, PRN, STOR,
)
from wordvm.memory import DEFAULT_LAYOUT, MemoryLayout
from .expression import Expr, Const, Add, Sub, Mul, Div, compile_expr


# ============================================================
# Configuration
# ============================================================

# Interesting constants for boundary value analysis
BOUNDARY_CONSTANTS = [
    0,            # Zero
    1,            # One
    2,            # Small value
    0xFF,         # Byte max
    0xFFFF,       # 16-bit max
    0x10000,      # Squares past 32 bits
    PAYLOAD_MAX,  # Largest literal
]

# Minimal interesting constants for smaller test suites
MINIMAL_CONSTANTS = [0, 1, 2, PAYLOAD_MAX]

BINARY_NODES = [Add, Sub, Mul, Div]


# ============================================================
# Expression Enumeration
# ============================================================

def enumerate_expressions(depth: int, constants: List[int]) -> Iterator[Expr]:
    """
    Exhaustively enumerate all expressions up to given depth.

    Args:
        depth: Maximum expression tree depth (0 = constants only)
        constants: List of constant values to use

    Yields:
        All possible expressions within the depth bound

    Example:
        depth=0: [Const(0), Const(1), ...]
        depth=1: Add(Const, Const), Sub(Const, Const), ... then all constants
    """
    if depth == 0:
        for c in constants:
            yield Const(c)
    else:
        sub_exprs = list(enumerate_expressions(depth - 1, constants))

        for left in sub_exprs:
            for right in sub_exprs:
                for node in BINARY_NODES:
                    yield node(left, right)

        for c in constants:
            yield Const(c)


def enumerate_expression_programs(max_depth: int,
                                  constants: List[int] = MINIMAL_CONSTANTS) -> Iterator[List[int]]:
    """
    Enumerate all expression-based programs up to given depth.

    Yields:
        Words for each expression program
    """
    for depth in range(max_depth + 1):
        for expr in enumerate_expressions(depth, constants):
            yield compile_expr(expr)


# ============================================================
# Boundary Value Tests
# ============================================================

def enumerate_jump_boundary_tests(layout: MemoryLayout = DEFAULT_LAYOUT) -> Iterator[List[int]]:
    """
    Jumps to targets around both ends of the instruction region.

    Targets at or past the region size fault; the last in-range target
    resumes one past the end and faults on fetch.
    """
    capacity = layout.instruction_capacity
    targets = [0, 1, 2, 3, capacity - 2, capacity - 1, capacity, capacity + 1, PAYLOAD_MAX]

    for target in targets:
        yield assemble([Literal(target), JMP, HALT, HALT])
        yield assemble([Literal(0), Literal(target), JZ, HALT, HALT])
        yield assemble([Literal(1), Literal(target), JZ, HALT, HALT])


def enumerate_data_boundary_tests(layout: MemoryLayout = DEFAULT_LAYOUT) -> Iterator[List[int]]:
    """LOAD and STOR at the edges of the program data region."""
    size = layout.mem_size - layout.data_base
    addresses = [0, 1, size - 1, size, size + 1, PAYLOAD_MAX]

    for address in addresses:
        yield assemble([Literal(address), LOAD, PRN, HALT])
        yield assemble([Literal(7), Literal(address), STOR, Literal(address), LOAD, PRN, HALT])


def enumerate_stack_boundary_tests() -> Iterator[List[int]]:
    """Underflow from every primitive that pops, and overflow from a DUP loop."""
    for opcode in Opcode:
        if opcode == Opcode.HALT:
            continue
        yield assemble([Primitive(opcode), HALT])

    # Each pass through the loop leaves one more value on the stack.
    yield assemble([Literal(1), DUP, Literal(0), JMP, HALT])


def enumerate_unknown_opcode_tests() -> Iterator[List[int]]:
    """Primitive words whose id has no handler."""
    for opcode in [len(Opcode), len(Opcode) + 1, 0xFF, PAYLOAD_MAX]:
        yield assemble([Primitive(opcode), HALT])


def enumerate_literal_tag_tests() -> Iterator[List[int]]:
    """Negative-tagged literals behave exactly like positive ones."""
    for value in MINIMAL_CONSTANTS:
        yield assemble([NegativeLiteral(value), PRN, HALT])
        yield assemble([Literal(value), NegativeLiteral(1), DIV, PRN, HALT])


# ============================================================
# Comprehensive Test Suites
# ============================================================

def generate_comprehensive_suite(max_expr_depth: int = 1,
                                 layout: MemoryLayout = DEFAULT_LAYOUT) -> Iterator[List[int]]:
    """
    Generate comprehensive exhaustive test suite with deduplication.

    Combines expression enumeration with targeted boundary tests, removing
    any duplicates to ensure each test is unique.

    Args:
        max_expr_depth: Maximum expression tree depth (1-2 recommended)
        layout: Memory layout the boundary tests are aimed at

    Yields:
        Words for each program in the suite (deduplicated)
    """
    seen = set()

    sources = [
        enumerate_expression_programs(max_depth=max_expr_depth, constants=BOUNDARY_CONSTANTS),
        enumerate_jump_boundary_tests(layout),
        enumerate_data_boundary_tests(layout),
        enumerate_stack_boundary_tests(),
        enumerate_unknown_opcode_tests(),
        enumerate_literal_tag_tests(),
    ]

    for source in sources:
        for words in source:
            key = tuple(words)
            if key not in seen:
                seen.add(key)
                yield words
