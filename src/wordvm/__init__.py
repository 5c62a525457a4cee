"""WordVM: a 32-bit word stack machine with region-checked memory."""

from .codec import (
    # Constants
    UINT32_MAX, PAYLOAD_MAX, TYPE_MASK, DATA_MASK,
    Tag, Opcode,
    # Codec
    classify, payload, encode,
    # Instructions
    Literal, NegativeLiteral, Primitive, Reserved, Instruction,
    HALT, ADD, SUB, MUL, DIV, DUP, JMP, JZ, PRN, PRNCHAR, LOAD, STOR,
    # Serialization
    encode_instruction, decode_instruction, assemble,
    serialize_program, deserialize_program,
)

from .errors import (
    WordVMException, InvalidProgram,
    MachineFault, OutOfBounds, UnknownOpcode, DivisionByZero,
)

from .memory import (
    Region, MemoryLayout, DEFAULT_LAYOUT,
    Memory, Stack, check_bounds,
)

from .output import OutputSink, StreamSink, BufferSink

from .loader import load_program, read_program_file

from .machine import (
    MachineState, Machine, step, run_program,
    Outcome, Halted, Faulted,
)

__version__ = "0.1.0"
