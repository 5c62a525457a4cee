"""
Fuzzer for WordVM.

Generates word programs with one of several strategies and runs each on a
fresh machine with a step budget:
- Expression programs have an oracle (the expression evaluator), so the
  machine's output is compared against the expected value.
- Random and structure-aware programs have no oracle; the run must end in
  HALT, a machine fault or the step budget. Any other exception is a crash.
"""

from dataclasses import dataclass
from enum import Enum
from random import Random
from typing import List, Optional, Callable

from wordvm.codec import (
    Literal, NegativeLiteral, Primitive, Reserved, Opcode,
    assemble, decode_instruction, PAYLOAD_MAX, UINT32_MAX,
)
from wordvm.errors import MachineFault, OutOfBounds
from wordvm.machine import Machine
from wordvm.memory import DEFAULT_LAYOUT, MemoryLayout
from wordvm.output import BufferSink
from .expression import Expr, random_expr, compile_expr, evaluate, stack_depth


# =============================================================================
# Configuration Constants
# =============================================================================

# Structure-aware generation probabilities
PROB_LITERAL = 0.45
PROB_PRIMITIVE = 0.45
PROB_NEGATIVE_LITERAL = 0.04
PROB_RESERVED = 0.03
PROB_INVALID_OPCODE = 0.03

PROB_LARGE_LITERAL = 0.1
PROB_MISSING_HALT = 0.1

# Mixed strategy probabilities
PROB_RANDOM_STRATEGY = 0.2
PROB_STRUCTURED_STRATEGY = 0.4
PROB_EXPRESSION_DEFAULT = 0.2
PROB_EXPRESSION_FULL_RANGE = 0.2


@dataclass
class GeneratorConfig:
    """Configuration for program generators."""
    max_length: int = 20              # For random generator
    max_instructions: int = 30        # For structured generator
    max_depth: int = 3                # For expression generator
    max_steps: int = 1000             # Step budget per run
    layout: MemoryLayout = DEFAULT_LAYOUT


DEFAULT_CONFIG = GeneratorConfig()


# =============================================================================
# Execution Results
# =============================================================================

@dataclass(frozen=True)
class ExecutionResult:
    """Base class for execution results - used as a union type."""


@dataclass(frozen=True)
class Success(ExecutionResult):
    output: str
    stack_top: Optional[int]


@dataclass(frozen=True)
class Fault(ExecutionResult):
    kind: str


@dataclass(frozen=True)
class Timeout(ExecutionResult):
    steps: int


@dataclass(frozen=True)
class Crash(ExecutionResult):
    reason: str


def fault_kind(error: MachineFault) -> str:
    """Short description of a fault, e.g. 'OutOfBounds(STACK)'."""
    if isinstance(error, OutOfBounds):
        return f"OutOfBounds({error.region.name})"
    return type(error).__name__


def execute_with_budget(
    words: List[int],
    max_steps: int = DEFAULT_CONFIG.max_steps,
    layout: MemoryLayout = DEFAULT_LAYOUT,
) -> ExecutionResult:
    """Load and run a program on a fresh machine, stopping after max_steps cycles."""
    sink = BufferSink()
    vm = Machine(layout=layout, sink=sink)
    try:
        vm.load_program(words)
        for _ in range(max_steps):
            if not vm.running:
                break
            vm.step()
        if vm.running:
            return Timeout(max_steps)
        return Success(sink.text, vm.top)
    except MachineFault as e:
        return Fault(fault_kind(e))
    except Exception as e:
        return Crash(f"machine raised exception: {repr(e)}")


def expected_result(expr: Expr) -> ExecutionResult:
    """What a compiled expression program must produce."""
    try:
        return Success(str(evaluate(expr)), None)
    except ZeroDivisionError:
        return Fault("DivisionByZero")


def compare_results(expected: Optional[ExecutionResult], actual: ExecutionResult) -> bool:
    """
    Compare execution results.

    Without an oracle any result except a crash is accepted. With one the
    results must be equal.
    """
    if isinstance(actual, Crash):
        return False
    return expected is None or expected == actual


# =============================================================================
# Program Generators
# =============================================================================

@dataclass(frozen=True)
class FuzzCase:
    words: List[int]
    expected: Optional[ExecutionResult] = None


class InstructionChoice(Enum):
    """Instruction kinds for structure-aware generation."""
    LITERAL = "literal"
    PRIMITIVE = "primitive"
    NEGATIVE_LITERAL = "negative_literal"
    RESERVED = "reserved"
    INVALID = "invalid"


def choose_instruction(rng: Random) -> InstructionChoice:
    """Choose instruction kind based on configured probabilities."""
    weights = [
        (InstructionChoice.LITERAL, int(PROB_LITERAL * 100)),
        (InstructionChoice.PRIMITIVE, int(PROB_PRIMITIVE * 100)),
        (InstructionChoice.NEGATIVE_LITERAL, int(PROB_NEGATIVE_LITERAL * 100)),
        (InstructionChoice.RESERVED, int(PROB_RESERVED * 100)),
        (InstructionChoice.INVALID, int(PROB_INVALID_OPCODE * 100)),
    ]
    choices, probs = zip(*weights)
    return rng.choices(choices, weights=probs)[0]


def small_literal(rng: Random) -> int:
    # Small values are valid jump targets and data addresses most of the time.
    if rng.random() < PROB_LARGE_LITERAL:
        return rng.randint(0, PAYLOAD_MAX)
    return rng.randint(0, 20)


def generate_random_words(rng: Random, config: GeneratorConfig = DEFAULT_CONFIG) -> FuzzCase:
    """Generate completely random words - no structure consideration."""
    length = rng.randint(1, config.max_length)
    return FuzzCase([rng.randint(0, UINT32_MAX) for _ in range(length)])


def generate_structure_aware_program(rng: Random, config: GeneratorConfig = DEFAULT_CONFIG) -> FuzzCase:
    """
    Generate a program of well-formed words, mostly known primitives and
    small literals, usually terminated by HALT.

    Invalid opcodes and reserved words still appear with low probability to
    exercise fault handling.
    """
    instructions = []
    num_instructions = rng.randint(1, config.max_instructions)

    for _ in range(num_instructions):
        choice = choose_instruction(rng)

        if choice == InstructionChoice.LITERAL:
            instructions.append(Literal(small_literal(rng)))
        elif choice == InstructionChoice.PRIMITIVE:
            instructions.append(Primitive(rng.choice(list(Opcode))))
        elif choice == InstructionChoice.NEGATIVE_LITERAL:
            instructions.append(NegativeLiteral(small_literal(rng)))
        elif choice == InstructionChoice.RESERVED:
            instructions.append(Reserved(rng.randint(0, len(Opcode) + 2)))
        elif choice == InstructionChoice.INVALID:
            instructions.append(Primitive(rng.randint(len(Opcode), PAYLOAD_MAX)))

    if rng.random() >= PROB_MISSING_HALT:
        instructions.append(Primitive(Opcode.HALT))

    return FuzzCase(assemble(instructions))


def generate_expression_program(
    rng: Random,
    config: GeneratorConfig = DEFAULT_CONFIG,
    max_value: Optional[int] = None
) -> FuzzCase:
    """
    Generate a program from a random expression tree, with its expected result.

    Args:
        rng: Random number generator
        config: Generator configuration (max_depth and layout are used)
        max_value: Maximum value for random constants. If None, samples from
                   [0-9, PAYLOAD_MAX]. Otherwise, uses rng.randint(0, max_value).
    """
    if max_value is None:
        const_values = [*range(0, 10), PAYLOAD_MAX]

        def const_generator(r: Random) -> int:
            return r.choice(const_values)
    else:
        def const_generator(r: Random) -> int:
            return r.randint(0, max_value)

    # Shallower trees until the program fits the layout; the oracle assumes it does.
    for depth in range(config.max_depth, -1, -1):
        expr = random_expr(rng, max_depth=depth, const_generator=const_generator)
        words = compile_expr(expr)
        if fits_layout(expr, words, config.layout):
            return FuzzCase(words, expected_result(expr))
    raise ValueError(f"No expression program fits {config.layout}")


def fits_layout(expr: Expr, words: List[int], layout: MemoryLayout) -> bool:
    """Whether a compiled expression loads and evaluates without leaving its regions."""
    return (stack_depth(expr) <= layout.stack_capacity
            and len(words) <= layout.instruction_capacity)


def generate_mixed_strategy_program(rng: Random, config: GeneratorConfig = DEFAULT_CONFIG) -> FuzzCase:
    """Pick one of the other generators at random."""
    strategy_roll = rng.random()

    if strategy_roll < PROB_RANDOM_STRATEGY:
        return generate_random_words(rng, config)
    elif strategy_roll < PROB_RANDOM_STRATEGY + PROB_STRUCTURED_STRATEGY:
        return generate_structure_aware_program(rng, config)
    elif strategy_roll < PROB_RANDOM_STRATEGY + PROB_STRUCTURED_STRATEGY + PROB_EXPRESSION_DEFAULT:
        return generate_expression_program(rng, config, max_value=None)
    else:
        return generate_expression_program(rng, config, max_value=PAYLOAD_MAX)


# Generator registry for dispatch
GENERATORS: dict[str, Callable[[Random, GeneratorConfig], FuzzCase]] = {
    "random": generate_random_words,
    "structured": generate_structure_aware_program,
    "expression": generate_expression_program,
    "mixed": generate_mixed_strategy_program,
}


# =============================================================================
# Statistics Tracking
# =============================================================================

@dataclass
class FuzzingStatistics:
    """Tracks fuzzing run statistics."""
    total_tests: int = 0
    bugs_found: int = 0
    crashes: int = 0
    halted: int = 0
    faults: int = 0
    timeouts: int = 0
    checked_by_oracle: int = 0

    @property
    def correct_tests(self) -> int:
        return self.total_tests - self.bugs_found

    @property
    def bug_rate(self) -> float:
        return (self.bugs_found / self.total_tests * 100) if self.total_tests > 0 else 0.0

    def record_test(self, case: FuzzCase, result: ExecutionResult, results_match: bool) -> None:
        """Record results of a single test."""
        self.total_tests += 1

        if case.expected is not None:
            self.checked_by_oracle += 1

        if isinstance(result, Success):
            self.halted += 1
        elif isinstance(result, Fault):
            self.faults += 1
        elif isinstance(result, Timeout):
            self.timeouts += 1
        elif isinstance(result, Crash):
            self.crashes += 1

        if not results_match:
            self.bugs_found += 1

    def print_summary(self) -> None:
        """Print formatted summary of results."""
        print("\n" + "=" * 60)
        print("Fuzzer Summary")
        print("-" * 40)
        print(f"Total tests run:           {self.total_tests}")
        print(f"Checked against oracle:    {self.checked_by_oracle}")
        print(f"Halted:                    {self.halted}")
        print(f"Faulted:                   {self.faults}")
        print(f"Step budget exhausted:     {self.timeouts}")
        print(f"Crashes:                   {self.crashes}")
        print(f"Bugs found:                {self.bugs_found}")
        print(f"Correct:                   {self.correct_tests}")

        if self.bugs_found > 0:
            print(f"Bug detection rate:     {self.bug_rate:.1f}%")
        else:
            print("\nNo bugs detected!")


# =============================================================================
# Bug Reporting
# =============================================================================

def report_bug(test_num: int, case: FuzzCase, actual: ExecutionResult) -> None:
    """Print detailed bug report."""
    print(f"\nTest {test_num}: Bug found")
    print(f"  Words:    {' '.join(f'{w:08x}' for w in case.words)}")
    print(f"    {[decode_instruction(w) for w in case.words]}")
    print(f"  Expected: {case.expected}")
    print(f"  Actual:   {actual}")


def print_header(num_tests: int, generator: str) -> None:
    """Print fuzzer run header."""
    print(f"WordVM Fuzzer - Running {num_tests} tests")
    print(f"Generator: {generator}")
    print("=" * 60)


# =============================================================================
# Fuzzer Main Logic
# =============================================================================

def run_single_test(
    case: FuzzCase,
    max_steps: int = DEFAULT_CONFIG.max_steps,
    layout: MemoryLayout = DEFAULT_LAYOUT,
) -> tuple[ExecutionResult, bool]:
    """
    Run a single fuzzing test case.

    Returns:
        Tuple of (result, results_match)
    """
    result = execute_with_budget(case.words, max_steps, layout)
    return result, compare_results(case.expected, result)


def run_fuzzer(
    num_tests: int = 1000,
    seed: Optional[int] = None,
    generator: str = "mixed",
    config: GeneratorConfig = DEFAULT_CONFIG,
    verbose: bool = True,
) -> FuzzingStatistics:
    """
    Run the fuzzer for a specified number of tests.

    Args:
        num_tests: Number of random test cases to generate
        seed: Random seed for reproducibility
        generator: Generator type: "random", "structured", "expression", or "mixed"
        config: Generator configuration
        verbose: Print header, bug reports and summary

    Returns:
        FuzzingStatistics object with results
    """
    if generator not in GENERATORS:
        raise ValueError(f"Unknown generator: {generator}. Available: {', '.join(GENERATORS)}")

    rng = Random(seed)
    generator_func = GENERATORS[generator]
    stats = FuzzingStatistics()

    if verbose:
        print_header(num_tests, generator)

    for i in range(num_tests):
        case = generator_func(rng, config)
        result, matches = run_single_test(case, config.max_steps, config.layout)

        stats.record_test(case, result, matches)

        if not matches and verbose:
            report_bug(i + 1, case, result)

    if verbose:
        stats.print_summary()
    return stats
