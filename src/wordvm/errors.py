"""Exceptions raised by WordVM."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .memory import Region


class WordVMException(Exception):
    """Base exception for all WordVM errors."""
    pass


class InvalidProgram(WordVMException):
    """Raised when a serialized program cannot be decoded into words."""
    pass


class MachineFault(WordVMException):
    """Base class for fatal run-time conditions. Any fault stops the run loop."""
    pass


class OutOfBounds(MachineFault):
    """Raised when an address falls outside the region it is meant to touch."""

    def __init__(self, region: Region, address: int):
        self.region = region
        self.address = address
        super().__init__(f"Pointer {address} is out of bounds for {region.name}")


class UnknownOpcode(MachineFault):
    """Raised when a primitive word carries an opcode id with no handler."""

    def __init__(self, opcode: int):
        self.opcode = opcode
        super().__init__(f"Unknown primitive opcode {opcode}")


class DivisionByZero(MachineFault):
    """Raised when DIV pops a zero divisor."""

    def __init__(self):
        super().__init__("Division by zero")
