"""Program loader for the AQA assembly machine.

Turns source lines into an ordered instruction list and a label table.
Instruction arguments are kept as text and only interpreted when the
instruction executes, so every label is known before any instruction
body is looked at.

Source format:
    - Blank lines and lines starting with // are ignored
    - A line ending with : declares a label for the next instruction
    - Every other line must start with one of the 20 mnemonics
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Sequence, Union

from .errors import DuplicateLabelError, SourceReadError, UnknownSyntaxError


logger = logging.getLogger(__name__)

COMMENT_MARKER = "//"
LABEL_SUFFIX = ":"

VALID_INSTRUCTIONS = (
    "LDR",   # LDR Rd, <memory ref>
    "STR",   # STR Rd, <memory ref>
    "ADD",   # ADD Rd, Rn, <operand2>
    "SUB",   # SUB Rd, Rn, <operand2>
    "MOV",   # MOV Rd, <operand2>
    "CMP",   # CMP Rn, <operand2>
    "B",     # B <label>
    "BEQ",   # BEQ <label>
    "BNE",   # BNE <label>
    "BGT",   # BGT <label>
    "BLT",   # BLT <label>
    "AND",   # AND Rd, Rn, <operand2>
    "ORR",   # ORR Rd, Rn, <operand2>
    "EOR",   # EOR Rd, Rn, <operand2>
    "MVN",   # MVN Rd, <operand2>
    "LSL",   # LSL Rd, Rn, <operand2>
    "LSR",   # LSR Rd, Rn, <operand2>
    "IN",    # IN Rd
    "OUT",   # OUT Rd
    "HALT",  # HALT
)


@dataclass(frozen=True)
class Instruction:
    """A loaded instruction.

    Attributes:
        text: Trimmed instruction line, arguments still embedded
        line_number: One-based line in the source file
    """
    text: str
    line_number: int


@dataclass
class Program:
    """Result of loading: instructions in address order plus labels.

    Attributes:
        instructions: Instructions; list position is the address
        labels: Label name to the index of the instruction that follows it
    """
    instructions: List[Instruction] = field(default_factory=list)
    labels: Dict[str, int] = field(default_factory=dict)

    def __len__(self) -> int:
        return len(self.instructions)


def read_source_lines(path: Union[str, Path]) -> List[str]:
    """Read a program file into a list of lines.

    Raises:
        SourceReadError: If the file cannot be read
    """
    try:
        with open(path, "r", encoding="utf-8") as f:
            return f.read().splitlines()
    except (OSError, UnicodeDecodeError) as e:
        raise SourceReadError(str(path), str(e)) from e


def parse_program(source: Union[str, Sequence[str]]) -> Program:
    """Parse assembly source into instructions and labels.

    Args:
        source: Source text, or a sequence of source lines

    Returns:
        The loaded Program

    Raises:
        DuplicateLabelError: If a label is declared twice
        UnknownSyntaxError: If a line is not a comment, label or instruction
    """
    lines = source.splitlines() if isinstance(source, str) else list(source)
    program = Program()

    for line_number, line in enumerate(lines, start=1):
        trimmed = line.strip()

        if not trimmed or trimmed.startswith(COMMENT_MARKER):
            continue

        if trimmed.split()[0] in VALID_INSTRUCTIONS:
            program.instructions.append(Instruction(trimmed, line_number))
        elif trimmed.endswith(LABEL_SUFFIX):
            label = trimmed[:-len(LABEL_SUFFIX)].strip()
            if label in program.labels:
                raise DuplicateLabelError(label, line_number, line)
            program.labels[label] = len(program.instructions)
            logger.debug("Label %r -> %d", label, program.labels[label])
        else:
            raise UnknownSyntaxError(line_number, line)

    return program
