"""AssemblyMachine: load and run AQA assembly programs.

Execution pipeline:
    SOURCE -> LOADER -> (instructions, labels)
    run(): FETCH -> DECODE -> REGISTRY -> EXECUTE -> STATE, until PC == len

The machine owns two kinds of state with different lifecycles. Memory
belongs to the machine and survives every load. The program (instructions,
labels) and the CPU state (registers, comparison, PC) are replaced on
every load.
"""

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Union

from .console import Console, StdConsole
from .errors import (
    AssemblyLoadError,
    CycleLimitExceededError,
    ExecutionError,
    InvalidStateError,
    NoProgramLoadedError,
    SourceReadError,
)
from .loader import Instruction, Program, parse_program, read_source_lines
from .operands import decode
from .registry import ExecutionEnvironment, InstructionRegistry, get_registry
from .state import CPUState, Comparison, MEMORY_SIZE, Memory, create_initial_state


logger = logging.getLogger(__name__)


@dataclass
class ExecutionTraceEntry:
    """Single entry in the execution trace.

    Attributes:
        cycle: Cycle number (0-indexed)
        instruction: Instruction text
        line_number: One-based source line of the instruction
        mnemonic: Decoded mnemonic
        args: Decoded argument tokens
        pre_state: State snapshot before execution
        post_state: State snapshot after execution
    """
    cycle: int
    instruction: str
    line_number: int
    mnemonic: str
    args: List[str]
    pre_state: dict
    post_state: dict


@dataclass
class RunResult:
    """Outcome of AssemblyMachine.run().

    Attributes:
        ok: True if the program reached its end or HALT
        cycles: Instructions executed
        pc: Program counter when the run stopped
        error: The error that aborted the run, if any
        trace: Trace entries (empty unless tracing is enabled)
    """
    ok: bool
    cycles: int = 0
    pc: int = 0
    error: Optional[ExecutionError] = None
    trace: List[ExecutionTraceEntry] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.ok

    def format_traceback(self) -> str:
        """Render the aborting error the way the environment reports it."""
        if self.error is None:
            return ""
        if self.error.line_number is None:
            return str(self.error)
        return "\n".join([
            "Traceback:",
            f"> File \"{self.error.filename}\", line {self.error.line_number}",
            f"RuntimeError: {self.error}",
        ])


class AssemblyMachine:
    """Virtual machine for the AQA assembly language.

    Attributes:
        console: Console used by IN and OUT and for listings
        registry: InstructionRegistry with the 20 handlers
        memory: Machine memory, persists across loads
        program: Currently loaded program, or None
        state: CPU state of the loaded program, or None
        filename: Name of the loaded program, used in tracebacks
        trace: Execution trace of the last run (when tracing is enabled)
        max_cycles: Cycle limit per run, or None for no limit
    """

    DEFAULT_MAX_CYCLES: Optional[int] = None

    def __init__(
        self,
        console: Optional[Console] = None,
        max_cycles: Optional[int] = DEFAULT_MAX_CYCLES,
        trace: bool = False,
        memory_size: int = MEMORY_SIZE,
    ):
        self.console: Console = console if console is not None else StdConsole()
        self.registry: InstructionRegistry = get_registry()
        self.memory = Memory(memory_size)
        self.program: Optional[Program] = None
        self.state: Optional[CPUState] = None
        self.filename: str = "<string>"
        self.trace_enabled = trace
        self.trace: List[ExecutionTraceEntry] = []
        self.max_cycles = max_cycles

    # =========================================================================
    # Loading
    # =========================================================================

    def unload(self) -> None:
        """Discard the loaded program. Memory is kept."""
        self.program = None
        self.state = None
        self.trace = []

    def load_program(self, source: Union[str, Sequence[str]], filename: str = "<string>") -> None:
        """Load an assembly program from source text or lines.

        Any previously loaded program is discarded, even if loading fails.

        Raises:
            AssemblyLoadError: If the source has a duplicate label or bad syntax
        """
        self.unload()
        try:
            program = parse_program(source)
        except AssemblyLoadError as e:
            logger.info("Failed to load %s: %s", filename, e)
            raise

        self.program = program
        self.state = create_initial_state()
        self.filename = filename
        logger.info(
            "Loaded %s: %d instructions, %d labels",
            filename, len(program.instructions), len(program.labels)
        )

    def load_file(self, path: Union[str, Path]) -> None:
        """Load an assembly program from a file.

        Raises:
            SourceReadError: If the file cannot be read
            AssemblyLoadError: If the source is invalid
        """
        self.unload()
        try:
            lines = read_source_lines(path)
        except SourceReadError as e:
            logger.info("%s", e)
            raise
        self.load_program(lines, filename=str(path))

    def is_loaded(self) -> bool:
        return self.program is not None

    # =========================================================================
    # Execution
    # =========================================================================

    def _environment(self) -> ExecutionEnvironment:
        return ExecutionEnvironment(
            memory=self.memory,
            labels=self.program.labels,
            console=self.console,
            program_length=len(self.program.instructions),
        )

    def _locate(self, error: ExecutionError, instruction: Instruction) -> ExecutionError:
        return error.locate(self.filename, instruction.line_number, self.state.pc, instruction.text)

    def step(self) -> Optional[ExecutionTraceEntry]:
        """Execute a single instruction cycle: FETCH -> DECODE -> EXECUTE.

        Returns:
            Trace entry for the executed instruction, or None if the
            program counter is already at the end of the program

        Raises:
            NoProgramLoadedError: If no program is loaded
            ExecutionError: If the instruction fails; state is left as it
                was before the instruction
        """
        if self.program is None or self.state is None:
            raise NoProgramLoadedError()

        pc = self.state.pc
        if pc >= len(self.program.instructions):
            return None

        # FETCH
        instruction = self.program.instructions[pc]
        pre_state = self.state

        # DECODE
        decoded = decode(instruction.text)

        # EXECUTE
        try:
            new_state = self.registry.execute(self._environment(), self.state, decoded)
            if not new_state.validate(len(self.program.instructions)):
                raise InvalidStateError(f"Invalid CPU state after '{instruction.text}': {new_state}")
        except ExecutionError as e:
            self._locate(e, instruction)
            raise
        self.state = new_state

        logger.debug("[%d] %s -> PC=%d", pc, instruction.text, self.state.pc)

        entry = ExecutionTraceEntry(
            cycle=pre_state.cycle_count,
            instruction=instruction.text,
            line_number=instruction.line_number,
            mnemonic=decoded.mnemonic,
            args=decoded.args,
            pre_state=pre_state.snapshot(),
            post_state=self.state.snapshot(),
        )
        if self.trace_enabled:
            self.trace.append(entry)
        return entry

    def run(self, max_cycles: Optional[int] = None) -> RunResult:
        """Run the loaded program from the first instruction.

        The program counter and comparison flag are reset; registers keep
        their values and memory is untouched. The run stops at HALT, at the
        end of the program, or at the first error.

        Args:
            max_cycles: Override the cycle limit for this run

        Returns:
            RunResult; errors are reported in it rather than raised
        """
        if self.program is None or self.state is None:
            error = NoProgramLoadedError()
            logger.info("%s", error)
            return RunResult(ok=False, error=error)

        limit = max_cycles if max_cycles is not None else self.max_cycles
        self.state = self.state.set_pc(0).clear_comparison().reset_cycles()
        self.trace = []
        program_length = len(self.program.instructions)

        try:
            while self.state.pc < program_length:
                if limit is not None and self.state.cycle_count >= limit:
                    raise self._locate(
                        CycleLimitExceededError(limit),
                        self.program.instructions[self.state.pc],
                    )
                self.step()
        except ExecutionError as e:
            logger.info("Run of %s aborted at instruction %d: %s", self.filename, self.state.pc, e)
            return RunResult(
                ok=False,
                cycles=self.state.cycle_count,
                pc=self.state.pc,
                error=e,
                trace=list(self.trace),
            )

        logger.info("Run of %s finished after %d cycles", self.filename, self.state.cycle_count)
        return RunResult(
            ok=True,
            cycles=self.state.cycle_count,
            pc=self.state.pc,
            trace=list(self.trace),
        )

    def is_finished(self) -> bool:
        if self.program is None or self.state is None:
            return True
        return self.state.pc >= len(self.program.instructions)

    # =========================================================================
    # Inspection
    # =========================================================================

    def _require_state(self) -> CPUState:
        if self.state is None:
            raise NoProgramLoadedError()
        return self.state

    @property
    def instructions(self) -> List[str]:
        if self.program is None:
            return []
        return [i.text for i in self.program.instructions]

    @property
    def labels(self) -> Dict[str, int]:
        if self.program is None:
            return {}
        return dict(self.program.labels)

    def get_register(self, index: int) -> int:
        """Get the value of register R<index>."""
        return self._require_state().get_register(index)

    def dump_registers(self) -> Dict[str, int]:
        return self._require_state().dump_registers()

    def get_memory(self, address: int) -> int:
        return self.memory.read(address)

    def set_memory(self, address: int, value: int) -> None:
        self.memory.write(address, value)

    def get_pc(self) -> int:
        return self._require_state().pc

    def get_comparison(self) -> Comparison:
        return self._require_state().comparison

    def get_cycle_count(self) -> int:
        if self.state is None:
            return 0
        return self.state.cycle_count

    def listing(self) -> List[str]:
        """Lines listing the loaded instructions and branch labels."""
        if self.program is None:
            return ["No program currently loaded."]

        lines = ["Instructions: "]
        for index, instruction in enumerate(self.program.instructions):
            lines.append(f"{index} : {instruction.text}")
        lines.append("Branches: ")
        for label, index in self.program.labels.items():
            lines.append(f"{label} : {index}")
        return lines

    def display_program(self) -> None:
        """Write the program listing to the console."""
        for line in self.listing():
            self.console.write_line(line)

    def print_trace(self) -> None:
        """Print execution trace in human-readable format."""
        print("=" * 70)
        print("EXECUTION TRACE")
        print("=" * 70)

        for entry in self.trace:
            print(f"\n[Cycle {entry.cycle}] line {entry.line_number}")
            print(f"  Instruction: {entry.instruction}")

            pre_regs = entry.pre_state["registers"]
            post_regs = entry.post_state["registers"]
            changes = [
                f"{reg}: {pre_regs[reg]} -> {post_regs[reg]}"
                for reg in pre_regs
                if pre_regs[reg] != post_regs[reg]
            ]
            if changes:
                print(f"  Changes: {', '.join(changes)}")

            pre_pc = entry.pre_state["pc"]
            post_pc = entry.post_state["pc"]
            if post_pc != pre_pc + 1:
                print(f"  PC: {pre_pc} -> {post_pc}")

        print("\n" + "=" * 70)
        print("FINAL STATE")
        print("=" * 70)
        if self.state:
            print(f"  Registers: {self.dump_registers()}")
            print(f"  Memory: {self.memory.dump()}")
            print(f"  PC: {self.get_pc()}")
            print(f"  Cycles: {self.get_cycle_count()}")

    def get_summary(self) -> Dict:
        """Get execution summary.

        Returns:
            Dictionary with execution statistics and final state
        """
        comparison = self.state.comparison if self.state else Comparison()
        return {
            "loaded": self.is_loaded(),
            "filename": self.filename if self.is_loaded() else None,
            "cycles": self.get_cycle_count(),
            "finished": self.is_finished(),
            "registers": self.dump_registers() if self.state else {},
            "memory": self.memory.dump(),
            "comparison": {"enabled": comparison.enabled, "a": comparison.a, "b": comparison.b},
            "pc": self.state.pc if self.state else 0,
            "trace_length": len(self.trace),
        }
