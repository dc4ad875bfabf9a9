from __future__ import annotations

import sys
from dataclasses import dataclass, field
from typing import Callable, Optional

from .bro_nodes import SourceLocation
from .bro_utils import location_to_s

Log = Callable[[str], None]


def channel_logger(channel: str, verbose: Optional[set[str]]) -> Optional[Log]:
    if not verbose or (channel not in verbose and "all" not in verbose):
        return None

    def _log(msg: str, *, _channel: str = channel) -> None:
        print(f"[brogen:{_channel}] {msg}", file=sys.stderr)

    return _log


@dataclass
class Diagnostic:
    message: str
    location: Optional[SourceLocation] = None

    def __str__(self) -> str:
        if self.location is None:
            return self.message
        return f"{self.message} at {location_to_s(self.location)}"


@dataclass
class Diagnostics:
    warnings: list[Diagnostic] = field(default_factory=list)
    echo: bool = False

    def warn(self, message: str, location: Optional[SourceLocation] = None) -> None:
        warning = Diagnostic(message, location)
        self.warnings.append(warning)
        if self.echo:
            print(f"[brogen:warn] {warning}", file=sys.stderr)

    def messages(self) -> list[str]:
        return [str(warning) for warning in self.warnings]

    def summary(self) -> str:
        if not self.warnings:
            return "no warnings"
        lines = [f"{len(self.warnings)} warning(s):"]
        lines.extend(f"  WARN: {warning}" for warning in self.warnings)
        return "\n".join(lines)
