"""AQA Assembly VM Command Line Interface.

Run a single script, or start an interactive session that keeps asking
for script paths. Memory is shared by every script run in one session.

Usage:
    aqa-vm programs/sum_1_to_10.assembly
    aqa-vm programs/fibonacci.assembly --trace
    aqa-vm                                   # interactive mode
"""

import argparse
import logging
import sys
from typing import List, Optional

from .console import Console, StdConsole
from .errors import AssemblyLoadError, SourceReadError
from .machine import AssemblyMachine


PROGRAM_EXTENSION = ".assembly"
EXIT_COMMAND = "EXIT"
SCRIPT_PROMPT = f"Enter script path ({PROGRAM_EXTENSION}) or {EXIT_COMMAND} :> "


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="aqa-vm",
        description="AQA Assembly Language Environment",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    # Run a program once
    aqa-vm programs/sum_1_to_10.assembly

    # Show the parsed listing and a full execution trace
    aqa-vm programs/multiply.assembly --listing --trace

    # Interactive mode: prompts for script paths until EXIT
    aqa-vm
        """
    )

    parser.add_argument(
        "path",
        nargs="?",
        help=f"Path to a {PROGRAM_EXTENSION} program. Omit for interactive mode."
    )
    parser.add_argument(
        "--max-cycles",
        type=int,
        default=None,
        help="Abort a run after this many instructions. Default: no limit"
    )
    parser.add_argument(
        "--trace", "-t",
        action="store_true",
        help="Print full execution trace after each run"
    )
    parser.add_argument(
        "--listing", "-l",
        action="store_true",
        help="Print parsed instructions and labels before each run"
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging"
    )
    return parser


def execute_script(machine: AssemblyMachine, path: str, listing: bool = False,
                   trace: bool = False) -> bool:
    """Load and run one script, reporting any error.

    Returns:
        True if the program loaded and ran to completion
    """
    if not path.lower().endswith(PROGRAM_EXTENSION):
        print(f"Error: Invalid file type. Please provide a path to a '{PROGRAM_EXTENSION}' file.")
        return False

    try:
        machine.load_file(path)
    except (AssemblyLoadError, SourceReadError) as e:
        print(f"An error occurred: {e}")
        return False

    if listing:
        machine.display_program()

    result = machine.run()
    if not result.ok:
        print(result.format_traceback())

    if trace:
        machine.print_trace()

    return result.ok


def run_interactive(machine: AssemblyMachine, console: Console, listing: bool = False,
                    trace: bool = False) -> None:
    """Prompt for script paths until EXIT or end of input."""
    print("AQA Assembly Language Environment (Interactive Mode)")
    print("----------------------------------------------------")

    while True:
        path = console.read_line(SCRIPT_PROMPT)
        if path is None:
            break

        path = path.strip()
        if not path:
            continue
        if path.upper() == EXIT_COMMAND:
            break

        execute_script(machine, path, listing=listing, trace=trace)

    print("Exiting environment.")


def main(argv: Optional[List[str]] = None, console: Optional[Console] = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    console = console if console is not None else StdConsole()
    machine = AssemblyMachine(
        console=console,
        max_cycles=args.max_cycles,
        trace=args.trace,
    )

    if args.path:
        print(f"Running script from command-line argument: {args.path}")
        ok = execute_script(machine, args.path, listing=args.listing, trace=args.trace)
        return 0 if ok else 1

    run_interactive(machine, console, listing=args.listing, trace=args.trace)
    return 0


if __name__ == "__main__":
    sys.exit(main())
