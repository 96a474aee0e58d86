"""Machine state for the AQA assembly machine.

State is split by lifecycle:

    CPUState: program-scoped state, created fresh on every load
        - Registers: R0-R12 (13 general-purpose 32-bit signed integers)
        - PC: Program counter (index into the instruction list)
        - Comparison: operands of the most recent CMP
        - Cycle count: Instructions executed in the current run

    Memory: machine-scoped state, created once per machine
        - 2^8 cells of 32-bit signed integers
        - Survives loading a new program

CPUState mutations return new state objects so that every executed
instruction can be traced with a before and after snapshot.
"""

from dataclasses import dataclass, field, replace
from typing import Dict, List, Optional


NUM_REGISTERS = 13
ADDRESS_WIDTH = 8
MEMORY_SIZE = 2 ** ADDRESS_WIDTH

# 32-bit signed integer bounds
INT32_MIN = -(2**31)
INT32_MAX = (2**31) - 1


def wrap_int32(value: int) -> int:
    """Wrap an integer to the 32-bit signed range (two's complement)."""
    value &= 0xFFFFFFFF
    return value - (1 << 32) if value > INT32_MAX else value


def register_name(index: int) -> str:
    return f"R{index}"


@dataclass(frozen=True)
class Comparison:
    """Operands of the most recent CMP.

    Attributes:
        enabled: Whether a CMP has executed in the current run
        a: Value of the compared register
        b: Value of the second operand
    """
    enabled: bool = False
    a: int = 0
    b: int = 0


@dataclass
class CPUState:
    """Immutable register, comparison and PC state.

    Attributes:
        registers: Values of R0-R12, in order
        pc: Program counter (index of the next instruction to execute)
        comparison: Operands of the most recent CMP
        cycle_count: Number of instructions executed in the current run
    """
    registers: List[int] = field(default_factory=lambda: [0] * NUM_REGISTERS)
    pc: int = 0
    comparison: Comparison = field(default_factory=Comparison)
    cycle_count: int = 0

    def snapshot(self) -> dict:
        """Create an immutable snapshot of current state for tracing."""
        return {
            "registers": self.dump_registers(),
            "pc": self.pc,
            "comparison": {
                "enabled": self.comparison.enabled,
                "a": self.comparison.a,
                "b": self.comparison.b,
            },
            "cycle_count": self.cycle_count,
        }

    def validate(self, program_length: Optional[int] = None) -> bool:
        """Validate state integrity.

        Checks:
            - Exactly 13 registers, all within 32-bit signed bounds
            - PC is non-negative and at most the program length
            - Cycle count is non-negative

        Args:
            program_length: Number of loaded instructions, if known

        Returns:
            True if state is valid, False otherwise
        """
        if len(self.registers) != NUM_REGISTERS:
            return False

        for value in self.registers:
            if not isinstance(value, int):
                return False
            if value < INT32_MIN or value > INT32_MAX:
                return False

        if self.pc < 0:
            return False
        if program_length is not None and self.pc > program_length:
            return False

        if self.cycle_count < 0:
            return False

        return True

    def get_register(self, index: int) -> int:
        """Get value of a register.

        Args:
            index: Register number (0-12)

        Raises:
            IndexError: If the register doesn't exist
        """
        if not 0 <= index < NUM_REGISTERS:
            raise IndexError(f"Invalid register: R{index}")
        return self.registers[index]

    def set_register(self, index: int, value: int) -> "CPUState":
        """Create new state with updated register value.

        The value wraps to the 32-bit signed range.

        Raises:
            IndexError: If the register doesn't exist
        """
        if not 0 <= index < NUM_REGISTERS:
            raise IndexError(f"Invalid register: R{index}")

        new_registers = list(self.registers)
        new_registers[index] = wrap_int32(value)
        return replace(self, registers=new_registers)

    def set_comparison(self, a: int, b: int) -> "CPUState":
        """Create new state recording a CMP of a against b."""
        return replace(self, comparison=Comparison(True, a, b))

    def clear_comparison(self) -> "CPUState":
        return replace(self, comparison=Comparison())

    def increment_pc(self) -> "CPUState":
        return replace(self, pc=self.pc + 1)

    def set_pc(self, new_pc: int) -> "CPUState":
        return replace(self, pc=new_pc)

    def increment_cycle(self) -> "CPUState":
        return replace(self, cycle_count=self.cycle_count + 1)

    def reset_cycles(self) -> "CPUState":
        return replace(self, cycle_count=0)

    def dump_registers(self) -> Dict[str, int]:
        """Get a copy of all register values keyed by name (R0-R12)."""
        return {register_name(i): v for i, v in enumerate(self.registers)}

    def __str__(self) -> str:
        regs = " ".join(f"{k}={v}" for k, v in self.dump_registers().items())
        cmp_text = (
            f"CMP=({self.comparison.a},{self.comparison.b})"
            if self.comparison.enabled else "CMP=none"
        )
        return f"[Cycle {self.cycle_count}] PC={self.pc} {regs} {cmp_text}"


def create_initial_state() -> CPUState:
    """Create a fresh CPU state for a newly loaded program."""
    return CPUState(
        registers=[0] * NUM_REGISTERS,
        pc=0,
        comparison=Comparison(),
        cycle_count=0
    )


class Memory:
    """Fixed-size addressable memory owned by the machine.

    Memory is not part of CPUState: it is zeroed once when
    the machine is created and keeps its contents across program loads.
    """

    def __init__(self, size: int = MEMORY_SIZE):
        if size <= 0:
            raise ValueError(f"Memory size must be positive, got {size}")
        self._cells: List[int] = [0] * size

    def __len__(self) -> int:
        return len(self._cells)

    def in_bounds(self, address: int) -> bool:
        return 0 <= address < len(self._cells)

    def read(self, address: int) -> int:
        if not self.in_bounds(address):
            raise IndexError(f"Memory address {address} is out of bounds")
        return self._cells[address]

    def write(self, address: int, value: int) -> None:
        if not self.in_bounds(address):
            raise IndexError(f"Memory address {address} is out of bounds")
        self._cells[address] = wrap_int32(value)

    def dump(self, nonzero_only: bool = True) -> Dict[int, int]:
        """Get memory contents as an address-to-value mapping."""
        return {
            addr: value for addr, value in enumerate(self._cells)
            if value != 0 or not nonzero_only
        }
