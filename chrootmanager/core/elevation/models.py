"""
Command request / output — the gateway's I/O contract.

Callers describe an elevated operation as a program plus discrete
arguments.  Nothing is ever passed through a shell.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum
from typing import Any, Iterable, Sequence


class CommandMode(StrEnum):
    """How the child's standard streams are wired."""

    CAPTURED = "captured"
    INTERACTIVE = "interactive"


@dataclass(frozen=True)
class CommandRequest:
    """One elevated operation: ``program arg1 arg2 …``."""

    program: str
    arguments: tuple[str, ...] = ()
    mode: CommandMode = CommandMode.CAPTURED

    @classmethod
    def of(
        cls,
        program: str,
        arguments: Iterable[Any] = (),
        mode: CommandMode = CommandMode.CAPTURED,
    ) -> CommandRequest:
        """Build a request, stringifying path-like arguments."""
        return cls(program=program, arguments=tuple(str(a) for a in arguments), mode=mode)

    def argv(self, sudo_binary: str = "sudo") -> list[str]:
        """Full argv handed to ``subprocess.run``.

        ``-n`` makes sudo fail fast instead of prompting when the
        session is gone; that failure is how expiry is detected.
        """
        return [sudo_binary, "-n", self.program, *self.arguments]

    def display(self) -> str:
        return " ".join([self.program, *self.arguments])


@dataclass
class CommandOutput:
    """Result of one elevated command."""

    program: str
    arguments: tuple[str, ...] = ()
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    duration_ms: int = 0
    metadata: dict[str, Any] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return self.returncode == 0

    def display(self) -> str:
        return " ".join([self.program, *self.arguments])

    def to_dict(self) -> dict[str, Any]:
        return {
            "command": self.display(),
            "returncode": self.returncode,
            "ok": self.ok,
            "stdout": self.stdout[-2000:],
            "stderr": self.stderr[-2000:],
            "duration_ms": self.duration_ms,
        }


BatchSpec = Sequence[tuple[str, Sequence[Any]]]
