"""Console collaborators used by IN and OUT.

The machine never touches stdin/stdout directly; it reads and writes
lines through one of these objects.
"""

from typing import Iterable, List, Optional


class Console:
    """Interface for line-based console I/O."""

    def read_line(self, prompt: str = "") -> Optional[str]:
        """Read the next line of input, or None at end of input."""
        raise NotImplementedError

    def write_line(self, text: str) -> None:
        raise NotImplementedError


class StdConsole(Console):
    """Console backed by the process's standard input and output."""

    def read_line(self, prompt: str = "") -> Optional[str]:
        try:
            return input(prompt)
        except EOFError:
            return None

    def write_line(self, text: str) -> None:
        print(text)


class ScriptedConsole(Console):
    """Console that replays fixed input lines and records output.

    Attributes:
        outputs: Every line written, in order
        prompts: Every prompt shown, in order
    """

    def __init__(self, inputs: Iterable[str] = ()):
        self._inputs: List[str] = [str(line) for line in inputs]
        self.outputs: List[str] = []
        self.prompts: List[str] = []

    def feed(self, *lines: str) -> None:
        self._inputs.extend(str(line) for line in lines)

    def read_line(self, prompt: str = "") -> Optional[str]:
        self.prompts.append(prompt)
        if not self._inputs:
            return None
        return self._inputs.pop(0)

    def write_line(self, text: str) -> None:
        self.outputs.append(text)
