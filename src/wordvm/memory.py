"""
Flat word memory split into three fixed regions.

Layout (defaults):
    [0, 50)      Stack          evaluation stack, grows upward from 0
    [50, 100)    Instructions   loaded program
    [100, 150)   Program data   addressable storage for LOAD/STOR

Every read and write names the region it means to touch and is checked
against that region before memory is dereferenced.
"""

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from .codec import UINT32_MAX
from .errors import OutOfBounds

VM_MEMORY_SIZE = 150
INSTRUCTION_POINTER_OFFSET = 50
PROGRAM_MEMORY_OFFSET = 100


class Region(Enum):
    STACK = 'STACK'
    INSTRUCTION = 'INSTRUCTION'
    PROGRAM_DATA = 'PROGRAM_DATA'


@dataclass(frozen=True)
class MemoryLayout:
    """Sizes of the three regions. The regions cover the whole memory."""
    mem_size: int = VM_MEMORY_SIZE
    stack_limit: int = INSTRUCTION_POINTER_OFFSET
    data_base: int = PROGRAM_MEMORY_OFFSET

    def __post_init__(self):
        if not (0 < self.stack_limit < self.data_base <= self.mem_size):
            raise ValueError(
                "Layout must satisfy 0 < stack_limit < data_base <= mem_size, got "
                f"stack_limit={self.stack_limit}, data_base={self.data_base}, mem_size={self.mem_size}"
            )

    @property
    def instruction_base(self) -> int:
        return self.stack_limit

    @property
    def instruction_capacity(self) -> int:
        return self.data_base - self.stack_limit

    @property
    def stack_capacity(self) -> int:
        # Slot 0 is never written: the first push lands on address 1.
        return self.stack_limit - 1

    def bounds(self, region: Region) -> Tuple[int, int]:
        """Half-open address range [low, high) of a region."""
        match region:
            case Region.STACK:
                return 0, self.stack_limit
            case Region.INSTRUCTION:
                return self.stack_limit, self.data_base
            case Region.PROGRAM_DATA:
                return self.data_base, self.mem_size
            case _:
                raise ValueError(f"Unknown region: {region}")

    def region_of(self, address: int) -> Optional[Region]:
        for region in Region:
            low, high = self.bounds(region)
            if low <= address < high:
                return region
        return None


DEFAULT_LAYOUT = MemoryLayout()


def check_bounds(layout: MemoryLayout, region: Region, address: int) -> None:
    """
    Check that an address lies inside the given region.

    The stack region excludes address 0, which marks the empty stack.

    Raises:
        OutOfBounds: If the address is outside the region
    """
    if region is Region.STACK and address == 0:
        raise OutOfBounds(region, address)
    if layout.region_of(address) is not region:
        raise OutOfBounds(region, address)


class Memory:
    """Word arena. The only way in or out is through region-checked accessors."""

    def __init__(self, layout: MemoryLayout = DEFAULT_LAYOUT, words: Optional[List[int]] = None):
        self.layout = layout
        if words is None:
            words = [0] * layout.mem_size
        elif len(words) != layout.mem_size:
            raise ValueError(f"Memory needs {layout.mem_size} words, got {len(words)}")
        self._words = words

    def read(self, region: Region, address: int) -> int:
        check_bounds(self.layout, region, address)
        return self._words[address]

    def write(self, region: Region, address: int, value: int) -> None:
        if not (0 <= value <= UINT32_MAX):
            raise ValueError(f"Memory word must be 0-0xFFFFFFFF, got {value}")
        check_bounds(self.layout, region, address)
        self._words[address] = value

    def copy(self) -> 'Memory':
        return Memory(self.layout, self._words.copy())

    def snapshot(self) -> Tuple[int, ...]:
        """All words, for inspection after a run."""
        return tuple(self._words)

    def region_words(self, region: Region) -> List[int]:
        low, high = self.layout.bounds(region)
        return self._words[low:high]

    def __len__(self) -> int:
        return len(self._words)

    def __eq__(self, other):
        if not isinstance(other, Memory):
            return NotImplemented
        return self.layout == other.layout and self._words == other._words


class Stack:
    """
    LIFO view over the stack region.

    The pointer indexes the current top; 0 means empty. Reads are bounds
    checked too, so popping an empty stack raises OutOfBounds(STACK, 0)
    instead of returning a stale word.
    """

    def __init__(self, memory: Memory, pointer: int = 0):
        self.memory = memory
        self.pointer = pointer

    def push(self, value: int) -> None:
        check_bounds(self.memory.layout, Region.STACK, self.pointer + 1)
        self.pointer += 1
        self.memory.write(Region.STACK, self.pointer, value)

    def pop(self) -> int:
        value = self.memory.read(Region.STACK, self.pointer)
        self.pointer -= 1
        return value

    def peek(self) -> int:
        return self.memory.read(Region.STACK, self.pointer)

    @property
    def depth(self) -> int:
        return self.pointer

    def items(self) -> List[int]:
        """Stack contents from bottom to top."""
        return [self.memory.read(Region.STACK, i) for i in range(1, self.pointer + 1)]
