"""Events broadcast to the session manager.

- ``TodosUpdated``: the bound store's list changed.
- ``ConfigurationChanged``: one or more tool-relevant settings changed.
  Unset fields mean "unchanged".
"""

from __future__ import annotations

from datetime import datetime, timezone

from pydantic import BaseModel, Field

from ..models import TodoItem


def _now() -> datetime:
    return datetime.now(timezone.utc)


class TodosUpdated(BaseModel):
    todos: tuple[TodoItem, ...] = ()
    title: str | None = None
    timestamp: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}


class ConfigurationChanged(BaseModel):
    auto_inject: bool | None = None
    enable_subtasks: bool | None = None
    auto_inject_file_path: str | None = None
    timestamp: datetime = Field(default_factory=_now)

    model_config = {"frozen": True}

    def is_empty(self) -> bool:
        return (
            self.auto_inject is None
            and self.enable_subtasks is None
            and self.auto_inject_file_path is None
        )


BroadcastEvent = TodosUpdated | ConfigurationChanged
