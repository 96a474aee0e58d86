"""InstructionRegistry: the 20 instruction handlers of the AQA machine.

Each mnemonic maps to a handler with the signature

    handler(env, state, args) -> CPUState

where `env` gives access to memory, labels and the console, `state` is
the CPU state before the instruction and `args` are the raw argument
tokens. Handlers validate their own argument count and resolve operands
through the operands module.

Mnemonics:
    Memory:      LDR, STR
    Arithmetic:  ADD, SUB, MOV
    Comparison:  CMP
    Branching:   B, BEQ, BNE, BGT, BLT
    Bitwise:     AND, ORR, EOR, MVN, LSL, LSR
    Console:     IN, OUT
    Special:     HALT

Branches and HALT set the program counter themselves; for every other
instruction the registry advances it by one after the handler returns.
"""

import operator
from dataclasses import dataclass
from typing import Callable, Dict, List, Mapping, Optional, Set

from .console import Console
from .errors import (
    InvalidInputError,
    NoPriorComparisonError,
    UnknownInstructionError,
    UnresolvedLabelError,
)
from .operands import (
    DecodedInstruction,
    expect_args,
    parse_int32,
    parse_register,
    resolve_memory_address,
    resolve_second_operand,
)
from .state import CPUState, Memory


INPUT_PROMPT = "> "

# Only the low five bits of a shift count are used, as with native 32-bit shifts
SHIFT_MASK = 0x1F


@dataclass
class ExecutionEnvironment:
    """Everything outside CPUState that a handler may touch.

    Attributes:
        memory: Machine memory
        labels: Label name to instruction index
        console: Console used by IN and OUT
        program_length: Number of loaded instructions
    """
    memory: Memory
    labels: Mapping[str, int]
    console: Console
    program_length: int


Handler = Callable[[ExecutionEnvironment, CPUState, List[str]], CPUState]


class InstructionRegistry:
    """Registry of instruction handlers keyed by mnemonic.

    The registry is frozen after initialization so no handler can be
    added or replaced at runtime.
    """

    def __init__(self):
        self._handlers: Dict[str, Handler] = {}
        self._controls_pc: Set[str] = set()
        self._frozen = False
        self._register_all_handlers()
        self.freeze()

    def _register_all_handlers(self) -> None:
        # Memory
        self.register("LDR", self._op_ldr)
        self.register("STR", self._op_str)

        # Arithmetic
        self.register("ADD", self._op_add)
        self.register("SUB", self._op_sub)
        self.register("MOV", self._op_mov)

        # Comparison
        self.register("CMP", self._op_cmp)

        # Control flow
        self.register("B", self._op_b, controls_pc=True)
        self.register("BEQ", self._op_beq, controls_pc=True)
        self.register("BNE", self._op_bne, controls_pc=True)
        self.register("BGT", self._op_bgt, controls_pc=True)
        self.register("BLT", self._op_blt, controls_pc=True)

        # Bitwise
        self.register("AND", self._op_and)
        self.register("ORR", self._op_orr)
        self.register("EOR", self._op_eor)
        self.register("MVN", self._op_mvn)
        self.register("LSL", self._op_lsl)
        self.register("LSR", self._op_lsr)

        # Console
        self.register("IN", self._op_in)
        self.register("OUT", self._op_out)

        # Special
        self.register("HALT", self._op_halt, controls_pc=True)

    def register(self, mnemonic: str, handler: Handler, controls_pc: bool = False) -> None:
        """Register an instruction handler.

        Args:
            mnemonic: Instruction name (e.g., "ADD")
            handler: Function taking (env, state, args) and returning new state
            controls_pc: Whether the handler sets the PC itself

        Raises:
            RuntimeError: If registry is frozen
            ValueError: If mnemonic already registered
        """
        if self._frozen:
            raise RuntimeError("Cannot register handlers: registry is frozen")
        if mnemonic in self._handlers:
            raise ValueError(f"Handler already registered: {mnemonic}")
        self._handlers[mnemonic] = handler
        if controls_pc:
            self._controls_pc.add(mnemonic)

    def freeze(self) -> None:
        self._frozen = True

    def execute(self, env: ExecutionEnvironment, state: CPUState,
                decoded: DecodedInstruction) -> CPUState:
        """Execute one decoded instruction.

        Returns:
            New CPU state with PC updated and cycle count incremented

        Raises:
            UnknownInstructionError: If the mnemonic is not registered
            ExecutionError: If the instruction fails
        """
        if decoded.mnemonic not in self._handlers:
            raise UnknownInstructionError(decoded.mnemonic)

        handler = self._handlers[decoded.mnemonic]
        new_state = handler(env, state, decoded.args)
        if decoded.mnemonic not in self._controls_pc:
            new_state = new_state.increment_pc()

        return new_state.increment_cycle()

    # =========================================================================
    # Memory
    # =========================================================================

    def _op_ldr(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        """LDR Rd, addr - Rd := memory[addr]."""
        expect_args("LDR", args, 2)
        register = parse_register(args[0])
        address = resolve_memory_address(args[1], state, len(env.memory))
        return state.set_register(register, env.memory.read(address))

    def _op_str(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        """STR Rd, addr - memory[addr] := Rd."""
        expect_args("STR", args, 2)
        register = parse_register(args[0])
        address = resolve_memory_address(args[1], state, len(env.memory))
        env.memory.write(address, state.get_register(register))
        return state

    # =========================================================================
    # Arithmetic
    # =========================================================================

    def _binary_op(self, mnemonic: str, state: CPUState, args: List[str],
                   op: Callable[[int, int], int]) -> CPUState:
        """Rd := op(Rn, operand2) for three-argument instructions."""
        expect_args(mnemonic, args, 3)
        dest = parse_register(args[0])
        src = parse_register(args[1])
        operand2 = resolve_second_operand(args[2], state)
        return state.set_register(dest, op(state.get_register(src), operand2))

    def _op_add(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._binary_op("ADD", state, args, operator.add)

    def _op_sub(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._binary_op("SUB", state, args, operator.sub)

    def _op_mov(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        """MOV Rd, op2 - Rd := op2."""
        expect_args("MOV", args, 2)
        dest = parse_register(args[0])
        return state.set_register(dest, resolve_second_operand(args[1], state))

    # =========================================================================
    # Comparison
    # =========================================================================

    def _op_cmp(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        """CMP Rn, op2 - Record Rn and op2 for the next conditional branch."""
        expect_args("CMP", args, 2)
        register = parse_register(args[0])
        operand2 = resolve_second_operand(args[1], state)
        return state.set_comparison(state.get_register(register), operand2)

    # =========================================================================
    # Control Flow
    # =========================================================================

    def _resolve_label(self, env: ExecutionEnvironment, label: str) -> int:
        if label not in env.labels:
            raise UnresolvedLabelError(label)
        return env.labels[label]

    def _op_b(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        """B label - Unconditional branch."""
        expect_args("B", args, 1)
        return state.set_pc(self._resolve_label(env, args[0]))

    def _conditional_branch(self, mnemonic: str, env: ExecutionEnvironment, state: CPUState,
                            args: List[str], condition: Callable[[int, int], bool]) -> CPUState:
        """Branch to the label if condition(a, b) holds for the last CMP, else fall through.

        Raises:
            NoPriorComparisonError: If no CMP has executed in this run
            UnresolvedLabelError: If the label is not defined
        """
        expect_args(mnemonic, args, 1)
        if not state.comparison.enabled:
            raise NoPriorComparisonError(mnemonic)
        target = self._resolve_label(env, args[0])

        if condition(state.comparison.a, state.comparison.b):
            return state.set_pc(target)
        return state.increment_pc()

    def _op_beq(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._conditional_branch("BEQ", env, state, args, operator.eq)

    def _op_bne(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._conditional_branch("BNE", env, state, args, operator.ne)

    def _op_bgt(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._conditional_branch("BGT", env, state, args, operator.gt)

    def _op_blt(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._conditional_branch("BLT", env, state, args, operator.lt)

    # =========================================================================
    # Bitwise
    # =========================================================================

    def _op_and(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._binary_op("AND", state, args, operator.and_)

    def _op_orr(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._binary_op("ORR", state, args, operator.or_)

    def _op_eor(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._binary_op("EOR", state, args, operator.xor)

    def _op_mvn(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        """MVN Rd, op2 - Rd := NOT op2."""
        expect_args("MVN", args, 2)
        dest = parse_register(args[0])
        return state.set_register(dest, ~resolve_second_operand(args[1], state))

    def _op_lsl(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._binary_op("LSL", state, args, lambda a, b: a << (b & SHIFT_MASK))

    def _op_lsr(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        return self._binary_op("LSR", state, args, lambda a, b: a >> (b & SHIFT_MASK))

    # =========================================================================
    # Console
    # =========================================================================

    def _op_in(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        """IN Rd - Read an integer from the console into Rd.

        Raises:
            InvalidInputError: If input is exhausted or not a 32-bit integer
        """
        expect_args("IN", args, 1)
        register = parse_register(args[0])

        value = parse_int32(env.console.read_line(INPUT_PROMPT))
        if value is None:
            raise InvalidInputError("Input must be a valid 32-bit integer.")
        return state.set_register(register, value)

    def _op_out(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        """OUT Rd - Write Rd's value to the console."""
        expect_args("OUT", args, 1)
        register = parse_register(args[0])
        env.console.write_line(str(state.get_register(register)))
        return state

    # =========================================================================
    # Special
    # =========================================================================

    def _op_halt(self, env: ExecutionEnvironment, state: CPUState, args: List[str]) -> CPUState:
        """HALT - Stop by moving the PC to the end of the program."""
        expect_args("HALT", args, 0)
        return state.set_pc(env.program_length)


# Singleton registry instance
_registry: Optional[InstructionRegistry] = None


def get_registry() -> InstructionRegistry:
    """Get the singleton instruction registry."""
    global _registry
    if _registry is None:
        _registry = InstructionRegistry()
    return _registry
