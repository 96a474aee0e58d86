"""Error hierarchy for the AQA assembly machine.

Load-time errors abort loading and are raised to the caller. Execution
errors abort a run; the machine catches them at the run boundary and
reports them through a RunResult.
"""

from typing import Optional


class AssemblyError(Exception):
    """Base class for every error raised by the machine."""


# =============================================================================
# Load-time errors
# =============================================================================

class AssemblyLoadError(AssemblyError):
    """A source line could not be assembled.

    Attributes:
        line_number: One-based source line number
        line: Original (untrimmed) source line
    """

    def __init__(self, message: str, line_number: int, line: str):
        super().__init__(message)
        self.line_number = line_number
        self.line = line


class DuplicateLabelError(AssemblyLoadError):
    def __init__(self, label: str, line_number: int, line: str):
        super().__init__(
            f"Program cannot contain 2 branches of the same name: '{label}' on line {line_number}",
            line_number,
            line,
        )
        self.label = label


class UnknownSyntaxError(AssemblyLoadError):
    def __init__(self, line_number: int, line: str):
        super().__init__(
            f"Unknown instruction or syntax error on line {line_number}: '{line}'",
            line_number,
            line,
        )


class SourceReadError(AssemblyError):
    """The program file could not be read."""

    def __init__(self, path: str, reason: str):
        super().__init__(f"Could not read '{path}': {reason}")
        self.path = path


# =============================================================================
# Execution errors
# =============================================================================

class ExecutionError(AssemblyError):
    """An instruction failed while the program was running.

    The machine fills in the location fields before reporting the error.
    """

    filename: Optional[str] = None
    line_number: Optional[int] = None
    instruction_index: Optional[int] = None
    instruction: Optional[str] = None

    def locate(self, filename: str, line_number: int, instruction_index: int,
               instruction: str) -> "ExecutionError":
        self.filename = filename
        self.line_number = line_number
        self.instruction_index = instruction_index
        self.instruction = instruction
        return self


class ArityMismatchError(ExecutionError):
    def __init__(self, mnemonic: str, expected: int, actual: int):
        noun = "argument" if expected == 1 else "arguments"
        super().__init__(f"{mnemonic} expects {expected} {noun}, but got {actual}.")
        self.mnemonic = mnemonic
        self.expected = expected
        self.actual = actual


class InvalidRegisterError(ExecutionError):
    pass


class AddressOutOfBoundsError(ExecutionError):
    def __init__(self, address: int, memory_size: int):
        super().__init__(
            f"Memory address {address} is out of bounds. "
            f"Valid addresses are 0-{memory_size - 1}."
        )
        self.address = address


class InvalidOperandError(ExecutionError):
    pass


class UnresolvedLabelError(ExecutionError):
    def __init__(self, label: str):
        super().__init__(f"Branch label '{label}' not found.")
        self.label = label


class NoPriorComparisonError(ExecutionError):
    def __init__(self, mnemonic: str):
        super().__init__(f"Cannot {mnemonic} without a preceding CMP instruction.")
        self.mnemonic = mnemonic


class InvalidInputError(ExecutionError):
    pass


class CycleLimitExceededError(ExecutionError):
    def __init__(self, limit: int):
        super().__init__(f"Max cycles ({limit}) exceeded")
        self.limit = limit


class NoProgramLoadedError(ExecutionError):
    def __init__(self):
        super().__init__("No program currently loaded.")


class UnknownInstructionError(ExecutionError):
    def __init__(self, mnemonic: str):
        super().__init__(f"Unknown instruction '{mnemonic}'.")
        self.mnemonic = mnemonic


class InvalidStateError(ExecutionError):
    """An instruction left the CPU state outside its valid range."""
