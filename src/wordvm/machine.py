"""
Fetch-decode-execute engine.

One cycle:
    1. Fetch:   check ip + 1 as an instruction address, advance ip
    2. Decode:  read the word at ip into the tag and data registers
    3. Execute: literals are pushed, everything else is dispatched as a primitive

Jumps set ip to base + target and the next fetch advances it once more, so a
jump to T resumes at instruction T + 1.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Dict, Iterable, List, Optional

from .codec import Opcode, Tag, UINT32_MAX, classify, payload, is_literal
from .errors import MachineFault, UnknownOpcode, DivisionByZero
from .loader import load_program
from .memory import DEFAULT_LAYOUT, Memory, MemoryLayout, Region, Stack, check_bounds
from .output import OutputSink, StreamSink

logger = logging.getLogger(__name__)


# =============================================================================
# Machine State
# =============================================================================

@dataclass
class MachineState:
    memory: Memory
    stack_pointer: int = 0
    instruction_pointer: int = 0
    tag: Tag = Tag.POSITIVE_INTEGER
    data: int = 0
    running: bool = True

    @classmethod
    def initial(cls, layout: MemoryLayout = DEFAULT_LAYOUT) -> 'MachineState':
        """Fresh state with ip one before the instruction base."""
        return cls(memory=Memory(layout), instruction_pointer=layout.instruction_base - 1)

    @property
    def layout(self) -> MemoryLayout:
        return self.memory.layout

    @property
    def stack(self) -> Stack:
        """Stack view over this state's memory. Pointer changes are not written back."""
        return Stack(self.memory, self.stack_pointer)

    @property
    def top(self) -> Optional[int]:
        """Top of stack, or None when the stack is empty."""
        if self.stack_pointer == 0:
            return None
        return self.stack.peek()

    def copy(self) -> 'MachineState':
        return MachineState(
            memory=self.memory.copy(),
            stack_pointer=self.stack_pointer,
            instruction_pointer=self.instruction_pointer,
            tag=self.tag,
            data=self.data,
            running=self.running,
        )


# =============================================================================
# Primitives
# =============================================================================

Handler = Callable[[MachineState, Stack, OutputSink], None]


def _halt(state: MachineState, stack: Stack, sink: OutputSink) -> None:
    logger.debug("HALT")
    state.running = False


def _binary(name: str, op: Callable[[int, int], int]) -> Handler:
    def handler(state: MachineState, stack: Stack, sink: OutputSink) -> None:
        b = stack.pop()
        a = stack.pop()
        logger.debug("%s %d %d", name, a, b)
        stack.push(op(a, b) & UINT32_MAX)
    return handler


def _div(state: MachineState, stack: Stack, sink: OutputSink) -> None:
    b = stack.pop()
    a = stack.pop()
    logger.debug("DIV %d %d", a, b)
    if b == 0:
        raise DivisionByZero()
    stack.push(a // b)


def _dup(state: MachineState, stack: Stack, sink: OutputSink) -> None:
    value = stack.peek()
    logger.debug("DUP %d", value)
    stack.push(value)


def _jump_target(state: MachineState, stack: Stack) -> int:
    target = stack.pop() + state.layout.instruction_base
    check_bounds(state.layout, Region.INSTRUCTION, target)
    return target


def _jmp(state: MachineState, stack: Stack, sink: OutputSink) -> None:
    target = _jump_target(state, stack)
    logger.debug("JMP %d", target - state.layout.instruction_base)
    state.instruction_pointer = target


def _jz(state: MachineState, stack: Stack, sink: OutputSink) -> None:
    # Target is checked before the condition is consumed.
    target = _jump_target(state, stack)
    condition = stack.pop()
    logger.debug("JZ %d (top of stack %d)", target - state.layout.instruction_base, condition)
    if condition == 0:
        state.instruction_pointer = target


def _prn(state: MachineState, stack: Stack, sink: OutputSink) -> None:
    value = stack.pop()
    logger.debug("PRN %d", value)
    sink.write_text(str(value))


def _prnchar(state: MachineState, stack: Stack, sink: OutputSink) -> None:
    value = stack.pop()
    logger.debug("PRNCHAR %d", value)
    # One UTF-16 code unit, like String.fromCharCode.
    sink.write_char(value & 0xFFFF)


def _load(state: MachineState, stack: Stack, sink: OutputSink) -> None:
    pointer = stack.pop() + state.layout.data_base
    value = state.memory.read(Region.PROGRAM_DATA, pointer)
    logger.debug("LOAD %d", pointer - state.layout.data_base)
    stack.push(value)


def _stor(state: MachineState, stack: Stack, sink: OutputSink) -> None:
    pointer = stack.pop() + state.layout.data_base
    value = stack.pop()
    logger.debug("STOR %d (top of stack %d)", pointer - state.layout.data_base, value)
    state.memory.write(Region.PROGRAM_DATA, pointer, value)


PRIMITIVES: Dict[int, Handler] = {
    Opcode.HALT: _halt,
    Opcode.ADD: _binary("ADD", lambda a, b: a + b),
    Opcode.SUB: _binary("SUB", lambda a, b: a - b),
    Opcode.MUL: _binary("MUL", lambda a, b: a * b),
    Opcode.DIV: _div,
    Opcode.DUP: _dup,
    Opcode.JMP: _jmp,
    Opcode.JZ: _jz,
    Opcode.PRN: _prn,
    Opcode.PRNCHAR: _prnchar,
    Opcode.LOAD: _load,
    Opcode.STOR: _stor,
}


# =============================================================================
# Cycle
# =============================================================================

def fetch(state: MachineState) -> None:
    check_bounds(state.layout, Region.INSTRUCTION, state.instruction_pointer + 1)
    state.instruction_pointer += 1


def decode(state: MachineState) -> None:
    word = state.memory.read(Region.INSTRUCTION, state.instruction_pointer)
    state.tag = classify(word)
    state.data = payload(word)


def execute(state: MachineState, sink: OutputSink) -> None:
    stack = state.stack

    if is_literal(state.tag):
        logger.debug("PUSH %d", state.data)
        stack.push(state.data)
    else:
        handler = PRIMITIVES.get(state.data)
        if handler is None:
            raise UnknownOpcode(state.data)
        handler(state, stack, sink)

    state.stack_pointer = stack.pointer


def step(state: MachineState, sink: OutputSink) -> MachineState:
    """
    Run one fetch-decode-execute cycle on a copy of the state.

    Args:
        state: State before the cycle; never modified
        sink: Receives PRN/PRNCHAR output

    Returns:
        State after the cycle

    Raises:
        MachineFault: OutOfBounds, UnknownOpcode or DivisionByZero
    """
    new_state = state.copy()
    fetch(new_state)
    decode(new_state)
    execute(new_state, sink)
    return new_state


# =============================================================================
# Outcomes
# =============================================================================

@dataclass(frozen=True)
class Outcome:
    """Result of run(). Holds the last completed state."""
    state: MachineState


@dataclass(frozen=True)
class Halted(Outcome):
    pass


@dataclass(frozen=True)
class Faulted(Outcome):
    error: MachineFault

    def raise_for_fault(self):
        raise self.error


# =============================================================================
# Machine
# =============================================================================

class Machine:
    """
    A single machine instance: private memory, registers and an output sink.

    Usage:
        vm = Machine(sink=BufferSink())
        vm.load_program(assemble([1, 2, ADD, HALT]))
        outcome = vm.run()
    """

    def __init__(self, layout: MemoryLayout = DEFAULT_LAYOUT, sink: Optional[OutputSink] = None):
        self.layout = layout
        self.sink = sink if sink is not None else StreamSink()
        self.state = MachineState.initial(layout)

    def load_program(self, words: Iterable[int]) -> int:
        """Copy words into instruction memory. Call before run() on a fresh machine."""
        return load_program(self.state.memory, words)

    def step(self) -> MachineState:
        """Run one cycle. Faults propagate and leave the previous state in place."""
        self.state = step(self.state, self.sink)
        return self.state

    def run(self) -> Outcome:
        """Run cycles until HALT or a fault."""
        while self.state.running:
            try:
                self.step()
            except MachineFault as e:
                # The faulting cycle was discarded, so it ran at ip + 1.
                logger.warning("Machine fault at instruction %d: %s",
                               self.state.instruction_pointer + 1 - self.layout.instruction_base, e)
                return Faulted(state=self.state, error=e)

        logger.debug("Top of stack: %s", self.state.top)
        if logger.isEnabledFor(logging.DEBUG):
            logger.debug("Memory: %s", ' '.join(str(w) for w in self.state.memory.snapshot()))
        return Halted(state=self.state)

    @property
    def running(self) -> bool:
        return self.state.running

    @property
    def stack(self) -> List[int]:
        return self.state.stack.items()

    @property
    def top(self) -> Optional[int]:
        return self.state.top


def run_program(
    words: Iterable[int],
    sink: Optional[OutputSink] = None,
    layout: MemoryLayout = DEFAULT_LAYOUT,
) -> Outcome:
    """Convenience function to load words into a fresh machine and run it."""
    vm = Machine(layout=layout, sink=sink)
    vm.load_program(words)
    return vm.run()
