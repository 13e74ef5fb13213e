"""Optional ``sudo`` elevation for external commands."""

import shlex
from dataclasses import dataclass
from typing import List, Optional, Sequence


@dataclass(frozen=True)
class Privilege:
    """How to elevate a command.

    ``elevate`` False runs commands as-is. With ``elevate`` True every wrapped
    command is prefixed by ``sudo`` followed by ``flags`` (split like a shell
    would) when given.
    """
    elevate: bool = False
    flags: Optional[str] = None

    @classmethod
    def none(cls):
        return cls()

    @classmethod
    def sudo(cls, flags: Optional[str] = None):
        return cls(elevate=True, flags=flags or None)

    def wrap(self, argv: Sequence[str]) -> List[str]:
        if not self.elevate:
            return list(argv)
        command = ["sudo"]
        if self.flags:
            command.extend(shlex.split(self.flags))
        command.extend(argv)
        return command
