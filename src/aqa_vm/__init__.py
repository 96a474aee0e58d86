"""AQA Assembly VM: an assembler and virtual machine for AQA assembly language.

Programs are written in the small register-based dialect used for AQA
A-level Computer Science: 13 registers (R0-R12), 256 memory cells,
labels, compare-and-branch, bitwise operations and console I/O.

Architecture:
    SOURCE -> LOADER -> (instructions, labels)
    run(): FETCH -> DECODE -> REGISTRY -> EXECUTE -> STATE
             |         |          |
         [PC-based] [operands] [20 handlers]

Modules:
    errors: Load-time and execution error hierarchy
    state: CPUState (registers, comparison, PC) and Memory
    operands: Register, memory address and second-operand resolution
    loader: Source lines to instructions and labels
    registry: Instruction handlers keyed by mnemonic
    console: Console I/O collaborators for IN and OUT
    machine: AssemblyMachine orchestrator
    cli: Command line front end
"""

__version__ = "0.1.0"

from .console import Console, ScriptedConsole, StdConsole
from .errors import (
    AddressOutOfBoundsError,
    ArityMismatchError,
    AssemblyError,
    AssemblyLoadError,
    CycleLimitExceededError,
    DuplicateLabelError,
    ExecutionError,
    InvalidInputError,
    InvalidOperandError,
    InvalidRegisterError,
    InvalidStateError,
    NoPriorComparisonError,
    NoProgramLoadedError,
    SourceReadError,
    UnknownInstructionError,
    UnknownSyntaxError,
    UnresolvedLabelError,
)
from .loader import Program, parse_program, read_source_lines
from .machine import AssemblyMachine, ExecutionTraceEntry, RunResult
from .registry import InstructionRegistry
from .state import CPUState, Memory

__all__ = [
    "AssemblyMachine",
    "RunResult",
    "ExecutionTraceEntry",
    "InstructionRegistry",
    "CPUState",
    "Memory",
    "Program",
    "parse_program",
    "read_source_lines",
    "Console",
    "StdConsole",
    "ScriptedConsole",
    "AssemblyError",
    "AssemblyLoadError",
    "DuplicateLabelError",
    "UnknownSyntaxError",
    "SourceReadError",
    "ExecutionError",
    "ArityMismatchError",
    "InvalidRegisterError",
    "AddressOutOfBoundsError",
    "InvalidOperandError",
    "UnresolvedLabelError",
    "NoPriorComparisonError",
    "InvalidInputError",
    "UnknownInstructionError",
    "InvalidStateError",
    "CycleLimitExceededError",
    "NoProgramLoadedError",
]
