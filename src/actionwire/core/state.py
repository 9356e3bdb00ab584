"""Application state snapshot held by the store."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Mapping

GLOBAL_LOADING_KEY = "global"


@dataclass(frozen=True, slots=True)
class State:
    """One immutable snapshot of the application state.

    Attributes:
        app: Namespace to slice mapping owned by registered modules.
        loading: Operation-group key to in-flight counter.
        system: Route/system slice, replaced wholesale by ``@@INIT_STATE``.
    """

    app: Mapping[str, Any] = field(default_factory=dict)
    loading: Mapping[str, int] = field(default_factory=dict)
    system: Any = None

    def slice(self, namespace: str, default: Any = None) -> Any:
        return self.app.get(namespace, default)

    def is_loading(self, key: str = GLOBAL_LOADING_KEY) -> bool:
        return self.loading.get(key, 0) > 0


__all__ = ["State", "GLOBAL_LOADING_KEY"]
