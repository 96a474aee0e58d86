"""AQA Assembly VM Interactive Demo.

A Gradio web interface for running and inspecting AQA assembly programs.

Usage:
    cd /path/to/aqa-asm-vm
    python demo/gradio_app.py

Features:
    - Write or load example programs
    - Supply IN values, one per line
    - See program output and step-by-step execution trace
    - Inspect final registers and non-zero memory cells
"""

import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

import gradio as gr
from aqa_vm import AssemblyError, AssemblyMachine, ScriptedConsole


# =============================================================================
# Example Programs
# =============================================================================

EXAMPLE_PROGRAMS = {
    "Sum 1-10": """// R0 = sum, R1 = counter
    MOV R0, #0
    MOV R1, #1
loop:
    ADD R0, R0, R1
    ADD R1, R1, #1
    CMP R1, #11
    BNE loop
// prints 55
    OUT R0
    HALT""",

    "Fibonacci to memory": """// R0 = previous, R1 = current, R2 = address
    MOV R0, #0
    MOV R1, #1
    MOV R2, #0
loop:
    STR R0, R2
    ADD R3, R0, R1
    MOV R0, R1
    MOV R1, R3
    ADD R2, R2, #1
    CMP R2, #10
    BLT loop
    LDR R4, 9
// prints 34
    OUT R4
    HALT""",

    "Multiply inputs": """    IN R1
    IN R2
    MOV R0, #0
loop:
    CMP R2, #0
    BEQ done
    ADD R0, R0, R1
    SUB R2, R2, #1
    B loop
done:
    OUT R0
    HALT""",

    "Custom": ""
}

EXAMPLE_INPUTS = {
    "Multiply inputs": "7\n6",
}

TRACE_LIMIT = 100


# =============================================================================
# Execution Functions
# =============================================================================

def run_program(program: str, inputs: str, max_cycles: int) -> tuple:
    """Execute an assembly program and return results.

    Args:
        program: Assembly source code
        inputs: Values for IN, one per line
        max_cycles: Maximum execution cycles

    Returns:
        Tuple of (output_text, summary_text, trace_text, state_text)
    """
    if not program.strip():
        return "", "Error: No program provided", "", ""

    console = ScriptedConsole(line for line in inputs.splitlines() if line.strip())
    machine = AssemblyMachine(console=console, max_cycles=int(max_cycles), trace=True)

    try:
        machine.load_program(program, filename="<editor>")
    except AssemblyError as e:
        return "", f"Load error: {e}", "", ""

    result = machine.run()

    output_text = "\n".join(console.outputs)

    summary_lines = [
        "EXECUTION SUMMARY",
        "=" * 40,
        f"Status: {'Completed' if result.ok else 'Aborted'}",
        f"Cycles: {result.cycles}",
        f"Instructions: {len(machine.instructions)}",
        f"Labels: {machine.labels}",
    ]
    if not result.ok:
        summary_lines.append("")
        summary_lines.append(result.format_traceback())
    summary_text = "\n".join(summary_lines)

    trace_lines = [
        "EXECUTION TRACE",
        "=" * 60,
    ]
    for entry in result.trace[:TRACE_LIMIT]:
        trace_lines.append(
            f"\n--- Cycle {entry.cycle} (PC={entry.pre_state['pc']}, line {entry.line_number}) ---"
        )
        trace_lines.append(f"Instruction: {entry.instruction}")

        pre_regs = entry.pre_state["registers"]
        post_regs = entry.post_state["registers"]
        changes = [
            f"{reg}: {pre_regs[reg]} -> {post_regs[reg]}"
            for reg in pre_regs
            if pre_regs[reg] != post_regs[reg]
        ]
        if changes:
            trace_lines.append(f"Changes:     {', '.join(changes)}")

    if len(result.trace) > TRACE_LIMIT:
        trace_lines.append(f"\n... ({len(result.trace) - TRACE_LIMIT} more entries)")
    trace_text = "\n".join(trace_lines)

    state_lines = [
        "FINAL REGISTERS",
        "=" * 30,
    ]
    for reg, value in machine.dump_registers().items():
        marker = " *" if value != 0 else ""
        state_lines.append(f"  {reg:>3}: {value:>11}{marker}")

    state_lines.append("")
    state_lines.append("MEMORY (non-zero)")
    state_lines.append("-" * 30)
    for address, value in machine.memory.dump().items():
        state_lines.append(f"  [{address:>3}]: {value:>11}")
    state_text = "\n".join(state_lines)

    return output_text, summary_text, trace_text, state_text


def load_example(example_name: str) -> tuple:
    """Load an example program and its inputs."""
    return EXAMPLE_PROGRAMS.get(example_name, ""), EXAMPLE_INPUTS.get(example_name, "")


# =============================================================================
# Gradio Interface
# =============================================================================

def create_demo():
    """Create and return the Gradio demo interface."""

    with gr.Blocks(title="AQA Assembly VM") as demo:
        gr.Markdown("""
        # AQA Assembly VM

        Assemble and run programs in the AQA assembly language: 13 registers,
        256 memory cells, labels, compare-and-branch and console I/O.
        """)

        with gr.Row():
            with gr.Column(scale=2):
                gr.Markdown("### Assembly Program")

                example_dropdown = gr.Dropdown(
                    choices=list(EXAMPLE_PROGRAMS.keys()),
                    value="Sum 1-10",
                    label="Load Example"
                )

                program_input = gr.Textbox(
                    value=EXAMPLE_PROGRAMS["Sum 1-10"],
                    label="Source Code",
                    lines=15,
                    placeholder="Enter assembly code here..."
                )

                inputs_box = gr.Textbox(
                    value="",
                    label="Input (one value per IN)",
                    lines=3
                )

                max_cycles = gr.Slider(
                    minimum=100,
                    maximum=100000,
                    value=10000,
                    step=100,
                    label="Max Cycles"
                )

                run_button = gr.Button("Run Program", variant="primary")

            with gr.Column(scale=3):
                with gr.Row():
                    output_box = gr.Textbox(label="Output", lines=10, interactive=False)
                    summary_box = gr.Textbox(label="Summary", lines=10, interactive=False)

                state_box = gr.Textbox(label="Final State", lines=12, interactive=False)
                trace_box = gr.Textbox(label="Execution Trace", lines=20, interactive=False)

        with gr.Accordion("Instruction Reference", open=False):
            gr.Markdown("""
            | Instruction | Description |
            |-------------|-------------|
            | `LDR Rd, <memory ref>` | Load memory into register |
            | `STR Rd, <memory ref>` | Store register into memory |
            | `ADD Rd, Rn, <operand2>` | Addition |
            | `SUB Rd, Rn, <operand2>` | Subtraction |
            | `MOV Rd, <operand2>` | Copy value into register |
            | `CMP Rn, <operand2>` | Compare for the next conditional branch |
            | `B <label>` | Branch always |
            | `BEQ/BNE/BGT/BLT <label>` | Branch if equal / not equal / greater / less |
            | `AND/ORR/EOR Rd, Rn, <operand2>` | Bitwise AND / OR / XOR |
            | `MVN Rd, <operand2>` | Bitwise NOT |
            | `LSL/LSR Rd, Rn, <operand2>` | Shift left / right |
            | `IN Rd` / `OUT Rd` | Read / print an integer |
            | `HALT` | Stop execution |

            **operand2**: `#n` (literal) or `Rn` (register value)
            **memory ref**: `n` (address 0-255) or `Rn` (address held in register)
            **Comments**: lines starting with `//`
            """)

        example_dropdown.change(
            fn=load_example,
            inputs=[example_dropdown],
            outputs=[program_input, inputs_box]
        )

        run_button.click(
            fn=run_program,
            inputs=[program_input, inputs_box, max_cycles],
            outputs=[output_box, summary_box, trace_box, state_box]
        )

    return demo


# =============================================================================
# Main
# =============================================================================

if __name__ == "__main__":
    demo = create_demo()
    demo.launch(
        share=False,
        server_name="0.0.0.0",
        server_port=7861,
        show_error=True
    )
