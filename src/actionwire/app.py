"""Application bootstrap: wiring, the process default app and the CLI."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
import threading
import time
from dataclasses import asdict, fields, replace
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Mapping, Optional, Sequence, TypeVar

from .core.actions import Action
from .core.middleware import ErrorInterceptor
from .core.module import Module
from .core.registry import HandlerRegistry
from .core.scheduler import EffectScheduler
from .core.state import State
from .core.store import Store
from .hooks import CallbackFactory
from .services.context import LoggerContext, get_logger_context
from .services.settings import Settings, SettingsStore, redact_secret
from .services.transport import Transport
from .utils import logging as logging_utils

_LOGGER = logging.getLogger(__name__)
_TRUE_VALUES = {"1", "true", "yes", "on", "debug"}
_FALSE_VALUES = {"0", "false", "no", "off", "disabled"}

T = TypeVar("T")
Entry = Callable[["App"], Awaitable[Any]]


class App:
    """One store plus the services feature modules need.

    Example::

        app = App(settings)
        app.register(cart)

        async def main(app):
            app.dispatch(cart.actions["fetch_items"]("user-1"))

        app.run(main)  # returns once every effect has finished
    """

    def __init__(
        self,
        settings: Settings | None = None,
        *,
        registry: HandlerRegistry | None = None,
        store: Store | None = None,
    ) -> None:
        self._settings = settings or Settings()
        if store is not None:
            registry = store.registry
        self._registry = registry or HandlerRegistry()
        self._store = store or Store(self._registry)
        self._callbacks = CallbackFactory(self._store.dispatch, self._store.get_state)
        self._transport: Transport | None = None

    # ------------------------------------------------------------------
    # Components
    # ------------------------------------------------------------------

    @property
    def settings(self) -> Settings:
        return self._settings

    @property
    def registry(self) -> HandlerRegistry:
        return self._registry

    @property
    def store(self) -> Store:
        return self._store

    @property
    def scheduler(self) -> EffectScheduler:
        return self._store.scheduler

    @property
    def interceptor(self) -> ErrorInterceptor:
        return self._store.interceptor

    @property
    def callbacks(self) -> CallbackFactory:
        return self._callbacks

    @property
    def context(self) -> LoggerContext:
        return get_logger_context(self._settings)

    @property
    def transport(self) -> Transport:
        """HTTP transport sending the identity headers of this process."""
        if self._transport is None:
            headers = {**self.context.as_headers(), **self._settings.default_headers}
            self._transport = Transport(replace(self._settings, default_headers=headers))
        return self._transport

    # ------------------------------------------------------------------
    # Store facade
    # ------------------------------------------------------------------

    def register(self, module: Module) -> None:
        self._store.register(module)

    def dispatch(self, action: Action) -> Action:
        return self._store.dispatch(action)

    def select(self, selector: Callable[[State], T]) -> T:
        return self._store.select(selector)

    def install_exception_hooks(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        self.interceptor.install(loop)

    # ------------------------------------------------------------------
    # Running
    # ------------------------------------------------------------------

    def run(self, entry: Entry | None = None) -> Any:
        """Run ``entry(app)`` on a fresh event loop, then drain every effect.

        An exception escaping ``entry`` is dispatched as ``@@ERROR``.

        Returns:
            The value returned by ``entry``, or None.
        """
        return asyncio.run(self._main(entry))

    async def _main(self, entry: Entry | None) -> Any:
        loop = asyncio.get_running_loop()
        self.scheduler.bind_loop(loop)
        hooks_installed = False
        if self._settings.install_exception_hooks and not self.interceptor.installed:
            self.install_exception_hooks(loop)
            hooks_installed = True
        result = None
        try:
            if entry is not None:
                try:
                    result = await entry(self)
                except Exception as exc:
                    self.interceptor.report(exc)
            await self.scheduler.join()
            return result
        finally:
            if hooks_installed:
                self.interceptor.uninstall()
            self.scheduler.bind_loop(None)
            if self._transport is not None:
                await self._transport.aclose()
                self._transport = None


# ----------------------------------------------------------------------
# Process default app
# ----------------------------------------------------------------------

_APP: App | None = None
_APP_LOCK = threading.Lock()


def create_app(settings: Settings | None = None) -> App:
    """Build and wire a new application."""

    _LOGGER.info("[actionwire] initialize")
    started = time.perf_counter()
    app = App(settings)
    _LOGGER.info("[actionwire] initialized in %.1f ms", (time.perf_counter() - started) * 1000)
    return app


def get_app() -> App:
    """Return the process default app, creating it from persisted settings."""

    global _APP
    with _APP_LOCK:
        if _APP is None:
            _APP = create_app(load_settings())
        return _APP


def register(module: Module) -> None:
    """Register ``module`` with the process default app."""

    get_app().register(module)


def reset_app() -> None:
    """Forget the process default app."""

    global _APP
    with _APP_LOCK:
        _APP = None


def configure_logging(debug: bool = False, *, force: bool = False, settings: Settings | None = None) -> Path:
    """Configure logging for the application."""

    level = logging.DEBUG if debug else logging.INFO
    context = get_logger_context(settings) if settings is not None else None
    path = logging_utils.setup_logging(level, context=context, force=force)
    _LOGGER.debug("Logging configured (level=%s)", logging.getLevelName(level))
    return path


def load_settings(
    path: Optional[Path] = None,
    *,
    store: SettingsStore | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> Settings:
    """Load persisted settings or fall back to defaults."""

    active_store = store or SettingsStore(path)
    try:
        return active_store.load(overrides=overrides)
    except OSError as exc:
        _LOGGER.warning("Failed to load settings from %s: %s", active_store.path, exc)
        return Settings()


# ----------------------------------------------------------------------
# Command line
# ----------------------------------------------------------------------


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point of the ``actionwire`` console script."""

    parser = _build_parser()
    args = parser.parse_args(argv)

    settings_path = Path(args.settings_path).expanduser() if args.settings_path else None
    store = SettingsStore(settings_path)
    try:
        overrides = _coerce_cli_overrides(args.overrides)
    except ValueError as exc:
        print(f"Invalid --set override: {exc}", file=sys.stderr)
        return 2

    settings = load_settings(store=store, overrides=overrides or None)
    configure_logging(args.debug or settings.debug_logging, settings=settings)

    if args.save:
        saved = store.save(settings)
        print(f"Settings saved to {saved}")
    if args.dump_settings:
        _dump_settings(settings, store)
    if not (args.save or args.dump_settings):
        parser.print_help()
    return 0


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="actionwire",
        description="Inspect or update the actionwire settings file.",
    )
    parser.add_argument(
        "--dump-settings",
        action="store_true",
        help="Print the effective settings (with secrets redacted) and exit.",
    )
    parser.add_argument(
        "--save",
        action="store_true",
        help="Persist the effective settings, including --set overrides.",
    )
    parser.add_argument(
        "--settings-path",
        metavar="PATH",
        help="Override the default ~/.actionwire/settings.json path.",
    )
    parser.add_argument(
        "--set",
        dest="overrides",
        metavar="KEY=VALUE",
        action="append",
        default=[],
        help="Override a setting (repeatable).",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logging.")
    return parser


def _dump_settings(settings: Settings, store: SettingsStore) -> None:
    payload = asdict(settings)
    payload["api_token"] = redact_secret(settings.api_token)
    print(json.dumps({"path": str(store.path), "settings": payload}, indent=2, sort_keys=True))


def _coerce_cli_overrides(items: Sequence[str]) -> Dict[str, Any]:
    known = {item.name: item for item in fields(Settings)}
    overrides: Dict[str, Any] = {}
    for entry in items:
        if "=" not in entry:
            raise ValueError(f"Override '{entry}' must use KEY=VALUE syntax.")
        key, raw_value = (part.strip() for part in entry.split("=", 1))
        if not key:
            raise ValueError("Override is missing a field name.")
        if key not in known:
            raise ValueError(f"Unknown setting '{key}'.")
        overrides[key] = _coerce_value(key, known[key].type, raw_value)
    return overrides


def _coerce_value(key: str, annotation: Any, raw_value: str) -> Any:
    # Annotations are strings under postponed evaluation.
    kind = str(annotation)
    if kind.startswith("bool"):
        lowered = raw_value.lower()
        if lowered in _TRUE_VALUES:
            return True
        if lowered in _FALSE_VALUES:
            return False
        raise ValueError(f"'{key}' expects a boolean, got {raw_value!r}")
    if kind.startswith("int"):
        return int(raw_value, 10)
    if kind.startswith("float"):
        return float(raw_value)
    if kind.startswith("dict"):
        try:
            value = json.loads(raw_value or "{}")
        except json.JSONDecodeError as exc:
            raise ValueError(f"'{key}' expects a JSON object") from exc
        if not isinstance(value, dict):
            raise ValueError(f"'{key}' expects a JSON object")
        return value
    if "None" in kind and raw_value.lower() in {"none", "null", ""}:
        return None
    return raw_value


__all__ = [
    "App",
    "configure_logging",
    "create_app",
    "get_app",
    "load_settings",
    "main",
    "register",
    "reset_app",
]
