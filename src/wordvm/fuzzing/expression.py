"""Expression tree ADT: constants and the four arithmetic primitives."""
from __future__ import annotations
from dataclasses import dataclass
from random import Random
from typing import Union, List, Callable

from wordvm.codec import (
    Instruction, Literal, assemble, PAYLOAD_MAX, UINT32_MAX,
    ADD, SUB, MUL, DIV, PRN, HALT,
)


def _default_const_generator(rng: Random) -> int:
    """Default constant generator: random 30-bit literal."""
    return rng.randint(0, PAYLOAD_MAX)


@dataclass(frozen=True)
class Const:
    """A constant that fits in a literal word."""
    value: int

    def __post_init__(self):
        if not isinstance(self.value, int):
            raise TypeError(f"Const value must be int, got {type(self.value)}")
        if self.value < 0 or self.value > PAYLOAD_MAX:
            raise ValueError(f"Const value must be in [0, {PAYLOAD_MAX}], got {self.value}")


@dataclass(frozen=True)
class Add:
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Sub:
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Mul:
    left: Expr
    right: Expr


@dataclass(frozen=True)
class Div:
    """Integer quotient. Division by zero is a machine fault."""
    left: Expr
    right: Expr


Expr = Union[Const, Add, Sub, Mul, Div]


# =============================================================================
# Evaluation
# =============================================================================

def evaluate(expr: Expr) -> int:
    """
    Compute the value the machine would print, with 32-bit wraparound.

    Raises:
        ZeroDivisionError: If any Div has a zero divisor
    """
    match expr:
        case Const(value=val):
            return val
        case Add(left=left, right=right):
            return (evaluate(left) + evaluate(right)) & UINT32_MAX
        case Sub(left=left, right=right):
            return (evaluate(left) - evaluate(right)) & UINT32_MAX
        case Mul(left=left, right=right):
            return (evaluate(left) * evaluate(right)) & UINT32_MAX
        case Div(left=left, right=right):
            return evaluate(left) // evaluate(right)
        case _:
            raise ValueError(f"Unknown expression type: {expr}")


def stack_depth(expr: Expr) -> int:
    """Stack slots needed to evaluate the compiled expression."""
    match expr:
        case Const():
            return 1
        case (Add(left=left, right=right) | Sub(left=left, right=right)
              | Mul(left=left, right=right) | Div(left=left, right=right)):
            return max(stack_depth(left), stack_depth(right) + 1)
        case _:
            raise ValueError(f"Unknown expression type: {expr}")


# =============================================================================
# Compilation (Expr -> Words)
# =============================================================================

def compile_expr_to_instructions(expr: Expr) -> List[Instruction]:
    """
    Compile an expression tree to a list of instructions.

    Uses post-order traversal: compile left operand, compile right operand,
    then emit the operation. Constants become literals.

    Examples:
        Const(5)                 -> [Literal(5)]
        Sub(Const(3), Const(4))  -> [Literal(3), Literal(4), SUB]
    """
    match expr:
        case Const(value=val):
            return [Literal(val)]
        case Add(left=left, right=right):
            return compile_expr_to_instructions(left) + compile_expr_to_instructions(right) + [ADD]
        case Sub(left=left, right=right):
            return compile_expr_to_instructions(left) + compile_expr_to_instructions(right) + [SUB]
        case Mul(left=left, right=right):
            return compile_expr_to_instructions(left) + compile_expr_to_instructions(right) + [MUL]
        case Div(left=left, right=right):
            return compile_expr_to_instructions(left) + compile_expr_to_instructions(right) + [DIV]
        case _:
            raise ValueError(f"Unknown expression type: {expr}")


def compile_expr(expr: Expr) -> List[int]:
    """Compile an expression into a program that prints its value and halts."""
    return assemble(compile_expr_to_instructions(expr) + [PRN, HALT])


# =============================================================================
# Random Expression Generation
# =============================================================================


def random_expr(rng: Random, max_depth: int = 3, const_generator: Callable[[Random], int] = _default_const_generator) -> Expr:
    """
    Generate a random expression tree.

    At each level, randomly chooses between:
    - Const (40% probability)
    - Add (20% probability)
    - Sub (15% probability)
    - Mul (15% probability)
    - Div (10% probability)

    When max_depth reaches 0, only generates Const to ensure termination.

    Args:
        rng: Random number generator (use Random(seed) for reproducibility)
        max_depth: Maximum depth of the expression tree
        const_generator: Callable that generates constant values.
                         Defaults to random 30-bit literals.
    """
    if max_depth <= 0:
        return Const(const_generator(rng))

    choice = rng.random()

    if choice < 0.4:
        return Const(const_generator(rng))
    elif choice < 0.6:
        node = Add
    elif choice < 0.75:
        node = Sub
    elif choice < 0.9:
        node = Mul
    else:
        node = Div

    return node(
        random_expr(rng, max_depth - 1, const_generator),
        random_expr(rng, max_depth - 1, const_generator)
    )
