"""Live tool settings shared by the session manager and tool handlers."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import DEFAULT_INSTRUCTIONS_PATH, Config
from .broadcast import ConfigurationChanged


@dataclass
class ToolSettings:
    """Settings that shape the exposed tools.

    In standalone (self-contained) mode there is no external channel, so
    auto-inject is never considered active and subtasks are always on.
    """

    standalone: bool = False
    auto_inject: bool = False
    enable_subtasks: bool = True
    auto_inject_file_path: str = DEFAULT_INSTRUCTIONS_PATH

    @classmethod
    def from_config(cls, config: Config) -> ToolSettings:
        return cls(
            standalone=config.standalone,
            auto_inject=config.auto_inject,
            enable_subtasks=config.enable_subtasks,
            auto_inject_file_path=config.auto_inject_file_path,
        )

    @property
    def auto_inject_active(self) -> bool:
        return self.auto_inject and not self.standalone

    @property
    def subtasks_active(self) -> bool:
        return self.standalone or self.enable_subtasks

    def apply(self, change: ConfigurationChanged) -> bool:
        """Apply the set fields of *change*. Returns True if anything changed."""
        changed = False
        if change.auto_inject is not None and change.auto_inject != self.auto_inject:
            self.auto_inject = change.auto_inject
            changed = True
        if (
            change.enable_subtasks is not None
            and change.enable_subtasks != self.enable_subtasks
        ):
            self.enable_subtasks = change.enable_subtasks
            changed = True
        if (
            change.auto_inject_file_path is not None
            and change.auto_inject_file_path != self.auto_inject_file_path
        ):
            self.auto_inject_file_path = change.auto_inject_file_path
            changed = True
        return changed
