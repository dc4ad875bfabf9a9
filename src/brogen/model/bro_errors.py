from __future__ import annotations

from typing import Optional


class BrogenError(ValueError):
    pass


class ConfigError(BrogenError):
    pass


class TypeResolutionError(BrogenError):
    def __init__(self, spelling: str, kind, location: Optional[str]) -> None:
        self.spelling = spelling
        self.kind = kind
        self.location = location
        super().__init__(
            f"Failed to resolve type '{spelling}' with kind {getattr(kind, 'name', kind)} "
            f"defined at {location or '?'}"
        )


class UnexpectedNodeError(BrogenError):
    def __init__(self, kind, owner: str, location: Optional[str]) -> None:
        self.kind = kind
        self.owner = owner
        self.location = location
        super().__init__(f"Unknown cursor kind {getattr(kind, 'name', kind)} in {owner} at {location or '?'}")


class MergeTargetError(BrogenError):
    pass
