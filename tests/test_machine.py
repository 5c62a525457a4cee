"""
Test suite for the WordVM execution engine.

Run with: uv run pytest tests/test_machine.py
"""

import logging
from io import BytesIO, TextIOWrapper

from wordvm.codec import (
    NegativeLiteral, Primitive, Reserved, Opcode, assemble,
    HALT, ADD, SUB, MUL, DIV, DUP, JMP, JZ, PRN, PRNCHAR, LOAD, STOR,
)
from wordvm.errors import OutOfBounds, UnknownOpcode, DivisionByZero
from wordvm.machine import Machine, MachineState, Halted, Faulted, step, run_program
from wordvm.memory import MemoryLayout, Region
from wordvm.output import BufferSink, StreamSink
from wordvm.loader import load_program
from wordvm.programs import countdown, hello_world


def run(instructions, layout=None):
    """Assemble and run a program; return (outcome, sink)."""
    sink = BufferSink()
    kwargs = {} if layout is None else {'layout': layout}
    outcome = run_program(assemble(instructions), sink=sink, **kwargs)
    return outcome, sink


def test_scenarios():
    print("WordVM Scenarios")
    print("=" * 50)

    # Scenario A: 1 + 2 + 3
    outcome, sink = run([1, 2, ADD, 3, ADD, HALT])
    assert isinstance(outcome, Halted)
    assert outcome.state.top == 6
    assert not outcome.state.running
    assert sink.text == ""
    print("✓ Scenario A: 1 + 2 + 3 = 6")

    # Scenario B: print "He"
    outcome, sink = run([72, PRNCHAR, 101, PRNCHAR, HALT])
    assert isinstance(outcome, Halted)
    assert sink.chunks == ["H", "e"]
    print("✓ Scenario B: PRNCHAR prints 'He'")

    # Scenario C: JMP 2 skips the HALT at 2 and resumes at 3
    outcome, sink = run([2, JMP, HALT, 7, PRN, HALT])
    assert isinstance(outcome, Halted)
    assert sink.text == "7"
    print("✓ Scenario C: JMP to T resumes at T + 1")


def test_arithmetic():
    cases = [
        ([10, 20, ADD], 30),
        ([7, 3, SUB], 4),
        ([3, 7, SUB], 0xFFFFFFFC),
        ([7, 6, MUL], 42),
        ([0x10000, 0x10000, MUL], 0),
        ([20, 6, DIV], 3),
        ([6, 20, DIV], 0),
    ]
    for program, expected in cases:
        outcome, _ = run(program + [HALT])
        assert isinstance(outcome, Halted), program
        assert outcome.state.top == expected, (program, outcome.state.top)
        assert outcome.state.stack.items() == [expected]
    print("✓ ADD/SUB/MUL/DIV compute a op b with b pushed last")


def test_add_wraps_to_32_bits():
    # (2^30 - 1) * 4 + 8 overflows 32 bits
    outcome, _ = run([0x3FFFFFFF, 4, MUL, 8, ADD, HALT])
    assert outcome.state.top == 4


def test_division_by_zero():
    outcome, _ = run([6, 0, DIV, 5, HALT])
    assert isinstance(outcome, Faulted)
    assert isinstance(outcome.error, DivisionByZero)
    # Last completed state is the one before DIV: nothing was pushed.
    assert outcome.state.stack.items() == [6, 0]
    print("✓ DIV by zero faults without pushing")


def test_dup():
    outcome, _ = run([5, DUP, MUL, HALT])
    assert outcome.state.top == 25


def test_jmp_out_of_range():
    outcome, sink = run([50, JMP, 1, PRN, HALT])
    assert isinstance(outcome, Faulted)
    assert isinstance(outcome.error, OutOfBounds)
    assert outcome.error.region == Region.INSTRUCTION
    assert outcome.error.address == 100
    assert sink.text == ""
    # Stopped right after the literal, before anything else ran.
    assert outcome.state.instruction_pointer == 50
    print("✓ JMP out of range faults")


def test_jz():
    # Condition zero: jump to 4, resume at 5
    outcome, sink = run([0, 4, JZ, HALT, HALT, 1, PRN, HALT])
    assert isinstance(outcome, Halted)
    assert sink.text == "1"

    # Condition non-zero: fall through, both values consumed
    outcome, sink = run([3, 4, JZ, HALT, HALT, 1, PRN, HALT])
    assert isinstance(outcome, Halted)
    assert sink.text == ""
    assert outcome.state.stack_pointer == 0
    print("✓ JZ taken and not taken")


def test_jz_checks_target_before_condition():
    outcome, _ = run([0, 99, JZ, HALT])
    assert isinstance(outcome, Faulted)
    assert outcome.error.region == Region.INSTRUCTION
    assert outcome.error.address == 149

    # Valid target but no condition on the stack
    outcome, _ = run([2, JZ, HALT])
    assert isinstance(outcome, Faulted)
    assert outcome.error.region == Region.STACK


def test_load_and_store():
    outcome, _ = run([42, 5, STOR, 5, LOAD, 6, LOAD, HALT])
    assert isinstance(outcome, Halted)
    assert outcome.state.stack.items() == [42, 0]
    assert outcome.state.memory.read(Region.PROGRAM_DATA, 105) == 42
    print("✓ STOR then LOAD")


def test_load_store_out_of_range():
    outcome, _ = run([1, 50, STOR, HALT])
    assert isinstance(outcome, Faulted)
    assert outcome.error.region == Region.PROGRAM_DATA
    assert outcome.error.address == 150

    outcome, _ = run([50, LOAD, HALT])
    assert isinstance(outcome, Faulted)
    assert outcome.error.region == Region.PROGRAM_DATA


def test_prn_and_prnchar():
    outcome, sink = run([123, PRN, 0, PRN, HALT])
    assert sink.chunks == ["123", "0"]

    # PRNCHAR emits one UTF-16 code unit
    outcome, sink = run([0x10041, PRNCHAR, HALT])
    assert sink.text == "A"


def test_prnchar_surrogate_on_utf8_stream():
    stream = TextIOWrapper(BytesIO(), encoding="utf-8")
    outcome = run_program(assemble([0xD800, PRNCHAR, 5, PRN, HALT]), sink=StreamSink(stream))
    assert isinstance(outcome, Halted)
    assert stream.buffer.getvalue() == "\ufffd5".encode("utf-8")

    # Only the surrogate range is replaced
    stream = TextIOWrapper(BytesIO(), encoding="utf-8")
    run_program(assemble([0xD7FF, PRNCHAR, 0xE000, PRNCHAR, HALT]), sink=StreamSink(stream))
    assert stream.buffer.getvalue() == "\ud7ff\ue000".encode("utf-8")


def test_unknown_opcode():
    outcome, _ = run([1, Primitive(12), HALT])
    assert isinstance(outcome, Faulted)
    assert isinstance(outcome.error, UnknownOpcode)
    assert outcome.error.opcode == 12
    assert outcome.state.top == 1
    print("✓ Unknown opcode faults")


def test_negative_literal_is_pushed_unchanged():
    outcome, _ = run([NegativeLiteral(5), NegativeLiteral(3), SUB, HALT])
    assert outcome.state.top == 2


def test_reserved_tag_dispatches_as_primitive():
    outcome, sink = run([9, Reserved(Opcode.PRN), HALT])
    assert isinstance(outcome, Halted)
    assert sink.text == "9"

    outcome, _ = run([Reserved(99)])
    assert isinstance(outcome.error, UnknownOpcode)


def test_empty_stack_faults():
    outcome, _ = run([ADD, HALT])
    assert isinstance(outcome, Faulted)
    assert outcome.error.region == Region.STACK
    assert outcome.error.address == 0


def test_runaway_program_overflows_stack():
    # Unused instruction memory is zero, i.e. literal 0.
    outcome, _ = run([])
    assert isinstance(outcome, Faulted)
    assert outcome.error.region == Region.STACK
    assert outcome.error.address == 50


def test_fetch_past_instruction_region():
    layout = MemoryLayout(mem_size=16, stack_limit=10, data_base=13)
    outcome, _ = run([1, 2, ADD], layout=layout)
    assert isinstance(outcome, Faulted)
    assert outcome.error.region == Region.INSTRUCTION
    assert outcome.error.address == 13
    assert outcome.state.top == 3


def test_fault_pattern_matching():
    outcome, _ = run([50, JMP])
    match outcome:
        case Faulted(error=OutOfBounds(region=Region.INSTRUCTION, address=address)):
            assert address == 100
        case _:
            assert False, f"Unexpected outcome {outcome}"

    try:
        outcome.raise_for_fault()
        assert False, "Should have raised"
    except OutOfBounds:
        pass


def test_step_keeps_previous_state():
    state = MachineState.initial()
    load_program(state.memory, assemble([7, HALT]))
    sink = BufferSink()

    after = step(state, sink)
    assert state.instruction_pointer == 49
    assert state.stack_pointer == 0
    assert after.instruction_pointer == 50
    assert after.top == 7

    halted = step(after, sink)
    assert after.running
    assert not halted.running
    assert halted.data == Opcode.HALT


def test_machine_step_and_run():
    vm = Machine(sink=BufferSink())
    vm.load_program(assemble([1, 2, ADD, HALT]))
    vm.step()
    assert vm.stack == [1]
    outcome = vm.run()
    assert isinstance(outcome, Halted)
    assert vm.stack == [3]
    assert vm.top == 3
    assert not vm.running

    # Running a halted machine is a no-op
    assert isinstance(vm.run(), Halted)


def test_load_program_bounds():
    vm = Machine(sink=BufferSink())
    try:
        vm.load_program([0] * 51)
        assert False, "Should have raised"
    except OutOfBounds as e:
        assert e.region == Region.INSTRUCTION
        assert e.address == 100

    vm = Machine(sink=BufferSink())
    assert vm.load_program([0] * 50) == 50

    try:
        vm.load_program([1 << 32])
        assert False, "Should have raised"
    except ValueError:
        pass


def test_bundled_programs():
    sink = BufferSink()
    outcome = run_program(countdown(), sink=sink)
    assert isinstance(outcome, Halted)
    assert sink.text == "9876543210"

    sink = BufferSink()
    run_program(countdown(3, address=7), sink=sink)
    assert sink.text == "210"

    sink = BufferSink()
    outcome = run_program(hello_world("Hello world"), sink=sink)
    assert isinstance(outcome, Halted)
    assert sink.text == "Hello world"

    try:
        hello_world("\U0001F600")
        assert False, "Should have raised"
    except ValueError:
        pass
    print("✓ Countdown and hello world")


def test_debug_trace_logging(caplog):
    caplog.set_level(logging.DEBUG, logger="wordvm.machine")
    run([1, 2, ADD, 0, 5, JZ, HALT])
    assert "PUSH 1" in caplog.text
    assert "ADD 1 2" in caplog.text
    assert "JZ 5 (top of stack 0)" in caplog.text
    assert "HALT" in caplog.text
    assert "Top of stack: 3" in caplog.text

    caplog.clear()
    run([ADD])
    assert any(r.levelno == logging.WARNING for r in caplog.records)
    assert "out of bounds for STACK" in caplog.text
    assert "Machine fault at instruction 0" in caplog.text

    caplog.clear()
    run([50, JMP])
    assert "Machine fault at instruction 1" in caplog.text
