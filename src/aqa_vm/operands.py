"""Operand resolution for the AQA assembly machine.

Instructions are stored as text and decoded immediately before they
execute. This module splits an instruction into its mnemonic and
arguments and interprets the three operand forms:

    Register:        Rn            (R0-R12)
    Memory address:  17 | Rn       (direct, or indirect through a register)
    Second operand:  #4 | Rn       (immediate literal, or a register's value)
"""

import re
from dataclasses import dataclass
from typing import List, Optional, Sequence

from .errors import (
    AddressOutOfBoundsError,
    ArityMismatchError,
    InvalidOperandError,
    InvalidRegisterError,
)
from .state import CPUState, INT32_MAX, INT32_MIN, NUM_REGISTERS


REGISTER_PREFIX = "R"
IMMEDIATE_PREFIX = "#"

_INT_PATTERN = re.compile(r"^\s*[+-]?[0-9]+\s*$")
_DIGITS_PATTERN = re.compile(r"^[0-9]+$")
_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class DecodedInstruction:
    """An instruction split into mnemonic and raw argument tokens.

    Attributes:
        mnemonic: Instruction name (e.g., "ADD")
        args: Argument tokens with all whitespace removed
        raw: Original instruction text
    """
    mnemonic: str
    args: List[str]
    raw: str


def parse_int32(text: str) -> Optional[int]:
    """Parse a decimal 32-bit signed integer.

    Accepts an optional sign and surrounding whitespace.

    Returns:
        The integer, or None if the text is malformed or out of range
    """
    if text is None or not _INT_PATTERN.match(text):
        return None
    value = int(text)
    if value < INT32_MIN or value > INT32_MAX:
        return None
    return value


def split_arguments(text: str) -> List[str]:
    """Split a comma-delimited argument list, ignoring all whitespace."""
    compact = _WHITESPACE.sub("", text)
    if not compact:
        return []
    return compact.split(",")


def decode(instruction: str) -> DecodedInstruction:
    """Split an instruction line into mnemonic and argument tokens.

    Args:
        instruction: Trimmed instruction text (e.g., "ADD R2, R0, #1")
    """
    parts = instruction.strip().split(None, 1)
    mnemonic = parts[0] if parts else ""
    args = split_arguments(parts[1]) if len(parts) > 1 else []
    return DecodedInstruction(mnemonic, args, instruction)


def expect_args(mnemonic: str, args: Sequence[str], count: int) -> None:
    """Raise ArityMismatchError unless exactly `count` arguments were given."""
    if len(args) != count:
        raise ArityMismatchError(mnemonic, count, len(args))


def parse_register(arg: str) -> int:
    """Parse a register reference.

    Args:
        arg: Argument token, e.g. "R5"

    Returns:
        Register number (0-12)

    Raises:
        InvalidRegisterError: If the format is wrong or the register is out of range
    """
    suffix = arg[len(REGISTER_PREFIX):]
    if not arg.startswith(REGISTER_PREFIX) or not _DIGITS_PATTERN.match(suffix):
        raise InvalidRegisterError(
            f"Invalid register format. Expected 'Rn', but got '{arg}'."
        )

    register = int(suffix)
    if register >= NUM_REGISTERS:
        raise InvalidRegisterError(
            f"{arg} is not a valid register. Valid registers are R0-R{NUM_REGISTERS - 1}."
        )
    return register


def resolve_memory_address(arg: str, state: CPUState, memory_size: int) -> int:
    """Resolve a memory reference to an address.

    A register argument addresses indirectly through the register's value;
    anything else must be an integer literal. Both forms are bounds checked.

    Raises:
        InvalidRegisterError: If a register reference is malformed
        InvalidOperandError: If the argument is neither register nor integer
        AddressOutOfBoundsError: If the address is outside memory
    """
    if arg.startswith(REGISTER_PREFIX):
        address = state.get_register(parse_register(arg))
    else:
        address = parse_int32(arg)
        if address is None:
            raise InvalidOperandError(
                "Invalid memory location format. Expected an integer or a "
                f"register, but got '{arg}'."
            )

    if address < 0 or address >= memory_size:
        raise AddressOutOfBoundsError(address, memory_size)
    return address


def resolve_second_operand(arg: str, state: CPUState) -> int:
    """Resolve an immediate literal ("#4") or register ("R8") to a value.

    Raises:
        InvalidOperandError: If the literal is malformed or the form is unknown
        InvalidRegisterError: If a register reference is malformed
    """
    if arg.startswith(IMMEDIATE_PREFIX):
        literal = parse_int32(arg[len(IMMEDIATE_PREFIX):])
        if literal is None:
            raise InvalidOperandError(f"Invalid literal value format: '{arg}'.")
        return literal

    if not arg.startswith(REGISTER_PREFIX):
        raise InvalidOperandError(
            "Invalid operand format. Expected a register 'Rn' or a literal "
            f"'#value', but got '{arg}'."
        )

    return state.get_register(parse_register(arg))
