"""Shared pytest fixtures."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Iterator

import pytest

from actionwire import app as app_module
from actionwire.core import ERROR_ACTION_TYPE, LOADING_ACTION_TYPE, Action, HandlerRegistry, Store
from actionwire.core.actions import ErrorPayload, LoadingPayload
from actionwire.services import context as context_module
from actionwire.services import settings as settings_module


class RecordingStore(Store):
    """Store remembering every action that went through dispatch, in order."""

    def __init__(self, registry: HandlerRegistry, **kwargs: Any) -> None:
        self.actions: list[Action] = []
        super().__init__(registry, **kwargs)

    def dispatch(self, action: Action) -> Action:
        self.actions.append(action)
        return super().dispatch(action)

    def types(self) -> list[str]:
        return [action.type for action in self.actions]

    @property
    def errors(self) -> list[ErrorPayload]:
        return [action.payload[0] for action in self.actions if action.type == ERROR_ACTION_TYPE]

    def loading_deltas(self, key: str) -> list[int]:
        deltas: list[int] = []
        for action in self.actions:
            if action.type != LOADING_ACTION_TYPE:
                continue
            payload: LoadingPayload = action.payload[0]
            if payload.key == key:
                deltas.append(payload.delta)
        return deltas


@pytest.fixture(autouse=True)
def isolated_environment(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """Keep settings, identity files and the default app out of the real home."""

    for name in list(os.environ):
        if name.startswith("ACTIONWIRE_"):
            monkeypatch.delenv(name, raising=False)
    state_dir = tmp_path / "state"
    monkeypatch.setattr(settings_module, "_STATE_DIR", state_dir)
    context_module.reset_logger_context()
    app_module.reset_app()
    yield state_dir
    context_module.reset_logger_context()
    app_module.reset_app()


@pytest.fixture
def registry() -> HandlerRegistry:
    return HandlerRegistry()


@pytest.fixture
def store(registry: HandlerRegistry) -> RecordingStore:
    return RecordingStore(registry)
