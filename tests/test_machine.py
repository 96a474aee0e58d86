"""Tests for the AssemblyMachine execution engine."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import pytest
from aqa_vm import (
    AddressOutOfBoundsError,
    ArityMismatchError,
    AssemblyMachine,
    CycleLimitExceededError,
    DuplicateLabelError,
    InvalidInputError,
    InvalidOperandError,
    InvalidRegisterError,
    InvalidStateError,
    NoPriorComparisonError,
    NoProgramLoadedError,
    Program,
    ScriptedConsole,
    SourceReadError,
    UnknownInstructionError,
    UnknownSyntaxError,
    UnresolvedLabelError,
)
from aqa_vm.loader import Instruction


@pytest.fixture
def console():
    return ScriptedConsole()


@pytest.fixture
def machine(console):
    return AssemblyMachine(console=console)


def run(machine, source):
    machine.load_program(source)
    return machine.run()


class TestArithmetic:
    """Test data movement and arithmetic instructions."""

    def test_mov_immediate(self, machine):
        assert run(machine, "MOV R3, #-7")
        assert machine.get_register(3) == -7

    def test_mov_register(self, machine):
        assert run(machine, "MOV R0, #9\nMOV R12, R0")
        assert machine.get_register(12) == 9

    def test_add_immediate_and_register(self, machine):
        assert run(machine, "MOV R0, #5\nADD R1, R0, #3\nADD R2, R1, R0")
        assert machine.get_register(1) == 8
        assert machine.get_register(2) == 13

    def test_sub(self, machine):
        assert run(machine, "MOV R0, #5\nSUB R1, R0, #8")
        assert machine.get_register(1) == -3

    def test_add_wraps_at_32_bits(self, machine):
        assert run(machine, "MOV R0, #2147483647\nADD R0, R0, #1")
        assert machine.get_register(0) == -2147483648


class TestBitwise:
    """Test bitwise and shift instructions."""

    def test_and_orr_eor_with_immediates(self, machine):
        assert run(machine, """
            MOV R0, #12
            AND R1, R0, #10
            ORR R2, R0, #3
            EOR R3, R0, #5
        """)
        assert machine.get_register(1) == 8
        assert machine.get_register(2) == 15
        assert machine.get_register(3) == 9

    def test_and_with_register(self, machine):
        assert run(machine, "MOV R0, #6\nMOV R1, #3\nAND R2, R0, R1")
        assert machine.get_register(2) == 2

    def test_mvn(self, machine):
        assert run(machine, "MVN R0, #0\nMOV R1, #5\nMVN R2, R1")
        assert machine.get_register(0) == -1
        assert machine.get_register(2) == -6

    def test_shifts(self, machine):
        assert run(machine, "MOV R0, #3\nLSL R1, R0, #4\nLSR R2, R1, #2")
        assert machine.get_register(1) == 48
        assert machine.get_register(2) == 12

    def test_lsl_wraps(self, machine):
        assert run(machine, "MOV R0, #1\nLSL R1, R0, #31")
        assert machine.get_register(1) == -2147483648

    def test_shift_count_uses_low_five_bits(self, machine):
        assert run(machine, "MOV R0, #1\nLSL R1, R0, #33\nLSL R2, R0, #-1")
        assert machine.get_register(1) == 2
        assert machine.get_register(2) == -2147483648

    def test_lsr_of_negative_keeps_sign(self, machine):
        assert run(machine, "MOV R0, #-8\nLSR R1, R0, #1")
        assert machine.get_register(1) == -4


class TestMemory:
    """Test LDR and STR."""

    def test_store_then_load_direct(self, machine):
        assert run(machine, "MOV R0, #42\nSTR R0, 100\nLDR R1, 100")
        assert machine.get_register(1) == 42
        assert machine.get_memory(100) == 42

    def test_store_then_load_indirect(self, machine):
        assert run(machine, "MOV R0, #7\nMOV R1, #255\nSTR R0, R1\nLDR R0, R1")
        assert machine.get_register(0) == 7
        assert machine.get_memory(255) == 7

    def test_same_register_round_trip(self, machine):
        assert run(machine, "MOV R5, #-11\nSTR R5, 0\nMOV R5, #0\nLDR R5, 0")
        assert machine.get_register(5) == -11

    def test_direct_address_256_out_of_bounds(self, machine):
        result = run(machine, "LDR R0, 256")
        assert isinstance(result.error, AddressOutOfBoundsError)

    def test_indirect_address_256_out_of_bounds(self, machine):
        result = run(machine, "MOV R1, #256\nSTR R0, R1")
        assert isinstance(result.error, AddressOutOfBoundsError)
        assert result.error.address == 256

    def test_memory_survives_reload(self, machine):
        assert run(machine, "MOV R0, #5\nSTR R0, 10")
        assert run(machine, "LDR R1, 10")
        assert machine.get_register(1) == 5

    def test_set_memory_visible_to_program(self, machine):
        machine.set_memory(3, 21)
        assert run(machine, "LDR R0, 3\nADD R0, R0, R0")
        assert machine.get_register(0) == 42


class TestBranching:
    """Test CMP and branches."""

    @pytest.mark.parametrize("mnemonic,a,b,taken", [
        ("BEQ", 5, 5, True),
        ("BEQ", 5, 6, False),
        ("BNE", 5, 6, True),
        ("BNE", 5, 5, False),
        ("BGT", 6, 5, True),
        ("BGT", 5, 5, False),
        ("BLT", 4, 5, True),
        ("BLT", 5, 5, False),
    ])
    def test_conditional_branch(self, machine, mnemonic, a, b, taken):
        assert run(machine, f"""
            MOV R0, #{a}
            CMP R0, #{b}
            {mnemonic} target
            MOV R1, #1
            HALT
        target:
            MOV R2, #1
        """)
        assert machine.get_register(1) == (0 if taken else 1)
        assert machine.get_register(2) == (1 if taken else 0)

    def test_compare_against_register(self, machine):
        assert run(machine, "MOV R0, #3\nMOV R1, #3\nCMP R0, R1\nBEQ same\nMOV R2, #1\nsame:")
        assert machine.get_register(2) == 0

    def test_unconditional_branch_ignores_comparison(self, machine):
        assert run(machine, "B skip\nMOV R0, #1\nskip:\nMOV R1, #1")
        assert machine.get_register(0) == 0
        assert machine.get_register(1) == 1

    def test_backward_branch_loop(self, machine):
        assert run(machine, """
            MOV R0, #0
        loop:
            ADD R0, R0, #1
            CMP R0, #5
            BLT loop
        """)
        assert machine.get_register(0) == 5

    def test_branch_without_compare(self, machine):
        result = run(machine, "BEQ end\nend:\nHALT")
        assert not result.ok
        assert isinstance(result.error, NoPriorComparisonError)
        assert str(result.error) == "Cannot BEQ without a preceding CMP instruction."
        assert result.error.instruction_index == 0
        assert result.pc == 0

    def test_compare_from_previous_run_does_not_count(self, machine):
        machine.load_program("""
            CMP R0, #0
            BEQ first
        first:
            BNE later
        later:
        """)
        assert machine.run()
        machine.load_program("BNE end\nend:")
        result = machine.run()
        assert isinstance(result.error, NoPriorComparisonError)

    def test_run_resets_comparison(self, machine):
        machine.load_program("BEQ end\nend:")
        machine.state = machine.state.set_comparison(1, 1)
        result = machine.run()
        assert isinstance(result.error, NoPriorComparisonError)
        assert machine.get_comparison().enabled is False

    def test_unresolved_label(self, machine):
        result = run(machine, "B nowhere")
        assert isinstance(result.error, UnresolvedLabelError)
        assert result.error.label == "nowhere"

    def test_label_at_end_terminates(self, machine):
        assert run(machine, "B end\nMOV R0, #1\nend:")
        assert machine.get_register(0) == 0
        assert machine.get_pc() == 2


class TestConsoleIO:
    """Test IN and OUT."""

    def test_out(self, machine, console):
        assert run(machine, "MOV R0, #-12\nOUT R0")
        assert console.outputs == ["-12"]

    def test_in(self, machine, console):
        console.feed("41")
        assert run(machine, "IN R4\nADD R4, R4, #1\nOUT R4")
        assert console.outputs == ["42"]
        assert console.prompts == ["> "]

    def test_in_accepts_surrounding_whitespace(self, machine, console):
        console.feed("  -3 ")
        assert run(machine, "IN R0")
        assert machine.get_register(0) == -3

    @pytest.mark.parametrize("text", ["abc", "", "1.5", "2147483648"])
    def test_in_rejects_non_integers(self, machine, console, text):
        console.feed(text)
        result = run(machine, "IN R0")
        assert isinstance(result.error, InvalidInputError)
        assert str(result.error) == "Input must be a valid 32-bit integer."

    def test_in_at_end_of_input(self, machine):
        result = run(machine, "IN R0")
        assert isinstance(result.error, InvalidInputError)


class TestHalt:
    """Test HALT and program termination."""

    def test_halt_moves_pc_to_end(self, machine):
        result = run(machine, "MOV R0, #1\nHALT\nMOV R0, #2\nMOV R0, #3")
        assert result.ok
        assert result.pc == 4
        assert result.cycles == 2
        assert machine.get_register(0) == 1

    def test_straight_line_advances_pc_once_per_instruction(self, machine):
        source = "\n".join(f"MOV R{i}, #{i}" for i in range(10))
        result = run(machine, source)
        assert result.ok
        assert result.cycles == 10
        assert result.pc == 10

    def test_empty_program(self, machine):
        result = run(machine, "// nothing here\n")
        assert result.ok
        assert result.cycles == 0

    def test_halt_with_argument(self, machine):
        result = run(machine, "HALT now")
        assert isinstance(result.error, ArityMismatchError)


class TestRuntimeErrors:
    """Test error reporting from run()."""

    def test_arity_mismatch(self, machine):
        result = run(machine, "ADD R0, R1")
        assert isinstance(result.error, ArityMismatchError)
        assert str(result.error) == "ADD expects 3 arguments, but got 2."

    def test_invalid_register(self, machine):
        result = run(machine, "MOV R13, #1")
        assert isinstance(result.error, InvalidRegisterError)

    def test_invalid_operand(self, machine):
        result = run(machine, "MOV R0, 5")
        assert isinstance(result.error, InvalidOperandError)

    def test_trailing_comment_is_an_invalid_operand(self, machine):
        result = run(machine, "MOV R0, #1 // note")
        assert not result.ok
        assert isinstance(result.error, InvalidOperandError)
        assert result.error.line_number == 1
        assert result.error.instruction_index == 0

    def test_unknown_mnemonic_in_built_program(self, machine):
        machine.load_program("HALT")
        machine.program = Program([Instruction("PUSH R0", 1)], {})
        result = machine.run()
        assert not result.ok
        assert isinstance(result.error, UnknownInstructionError)
        assert str(result.error) == "Unknown instruction 'PUSH'."
        assert result.error.line_number == 1

    def test_branch_past_program_end_is_invalid_state(self, machine):
        machine.load_program("HALT")
        machine.program = Program([Instruction("B far", 1)], {"far": 5})
        result = machine.run()
        assert isinstance(result.error, InvalidStateError)
        assert result.pc == 0
        assert result.cycles == 0

    def test_state_kept_up_to_failing_instruction(self, machine, console):
        result = run(machine, "MOV R0, #1\nOUT R0\nSTR R0, 999\nMOV R0, #2")
        assert not result.ok
        assert machine.get_register(0) == 1
        assert console.outputs == ["1"]
        assert result.pc == 2
        assert result.cycles == 2

    def test_error_location(self, machine):
        machine.load_program("// comment\nMOV R0, #1\n\nMOV R0, R99", filename="bad.assembly")
        result = machine.run()
        assert result.error.filename == "bad.assembly"
        assert result.error.line_number == 4
        assert result.error.instruction_index == 1
        assert result.error.instruction == "MOV R0, R99"

    def test_format_traceback(self, machine):
        machine.load_program("MOV R0, #1\nBGT end\nend:", filename="prog.assembly")
        result = machine.run()
        assert result.format_traceback() == "\n".join([
            "Traceback:",
            "> File \"prog.assembly\", line 2",
            "RuntimeError: Cannot BGT without a preceding CMP instruction.",
        ])

    def test_successful_run_has_no_traceback(self, machine):
        assert run(machine, "HALT").format_traceback() == ""

    def test_run_without_program(self, machine):
        result = machine.run()
        assert not result.ok
        assert isinstance(result.error, NoProgramLoadedError)
        assert result.format_traceback() == "No program currently loaded."

    def test_cycle_limit(self, console):
        machine = AssemblyMachine(console=console, max_cycles=10)
        result = run(machine, "loop:\nB loop")
        assert isinstance(result.error, CycleLimitExceededError)
        assert result.cycles == 10

    def test_cycle_limit_override(self, machine):
        machine.load_program("loop:\nB loop")
        result = machine.run(max_cycles=3)
        assert isinstance(result.error, CycleLimitExceededError)
        assert result.cycles == 3


class TestLifecycle:
    """Test loading, reloading and state reset."""

    def test_registers_reset_on_load(self, machine):
        assert run(machine, "MOV R0, #9")
        machine.load_program("HALT")
        assert machine.get_register(0) == 0

    def test_registers_persist_between_runs(self, machine):
        machine.load_program("ADD R0, R0, #1")
        machine.run()
        second = machine.run()
        assert machine.get_register(0) == 2
        # PC and cycle count restart on every run
        assert second.cycles == 1
        assert second.pc == 1

    def test_failed_load_discards_previous_program(self, machine):
        machine.load_program("HALT")
        with pytest.raises(DuplicateLabelError):
            machine.load_program("a:\na:")
        assert not machine.is_loaded()
        assert isinstance(machine.run().error, NoProgramLoadedError)

    def test_unknown_syntax_raised_from_load(self, machine):
        with pytest.raises(UnknownSyntaxError):
            machine.load_program("PUSH R0")

    def test_load_file(self, machine, tmp_path):
        path = tmp_path / "prog.assembly"
        path.write_text("MOV R0, #4\nOUT R0\n")
        machine.load_file(path)
        assert machine.filename == str(path)
        assert machine.run()

    def test_load_missing_file(self, machine, tmp_path):
        machine.load_program("HALT")
        with pytest.raises(SourceReadError):
            machine.load_file(tmp_path / "missing.assembly")
        assert not machine.is_loaded()

    def test_step(self, machine):
        machine.load_program("MOV R0, #1\nMOV R1, #2")
        entry = machine.step()
        assert entry.instruction == "MOV R0, #1"
        assert machine.get_pc() == 1
        machine.step()
        assert machine.step() is None
        assert machine.is_finished()

    def test_step_raises_execution_errors(self, machine):
        machine.load_program("LDR R0, 300")
        with pytest.raises(AddressOutOfBoundsError):
            machine.step()

    def test_step_without_program(self, machine):
        with pytest.raises(NoProgramLoadedError):
            machine.step()


class TestListingAndTrace:
    """Test program listing, trace and summary."""

    def test_listing(self, machine, console):
        machine.load_program("start:\nMOV R0, #1\nloop:\nB loop")
        machine.display_program()
        assert console.outputs == [
            "Instructions: ",
            "0 : MOV R0, #1",
            "1 : B loop",
            "Branches: ",
            "start : 0",
            "loop : 1",
        ]

    def test_listing_without_program(self, machine):
        assert machine.listing() == ["No program currently loaded."]

    def test_trace_disabled_by_default(self, machine):
        assert run(machine, "MOV R0, #1").trace == []

    def test_trace_records_each_cycle(self, console):
        machine = AssemblyMachine(console=console, trace=True)
        result = run(machine, "MOV R0, #42\nHALT")
        assert [e.instruction for e in result.trace] == ["MOV R0, #42", "HALT"]
        assert result.trace[0].pre_state["registers"]["R0"] == 0
        assert result.trace[0].post_state["registers"]["R0"] == 42
        assert result.trace[1].post_state["pc"] == 2

    def test_summary(self, machine):
        machine.load_program("MOV R0, #5\nSTR R0, 1\nCMP R0, #2")
        machine.run()
        summary = machine.get_summary()
        assert summary["cycles"] == 3
        assert summary["finished"] is True
        assert summary["registers"]["R0"] == 5
        assert summary["memory"] == {1: 5}
        assert summary["comparison"] == {"enabled": True, "a": 5, "b": 2}

    def test_print_trace(self, console, capsys):
        machine = AssemblyMachine(console=console, trace=True)
        run(machine, "MOV R0, #1\nB end\nend:")
        machine.print_trace()
        out = capsys.readouterr().out
        assert "EXECUTION TRACE" in out
        assert "R0: 0 -> 1" in out
        assert "PC: 1 -> 2" not in out
