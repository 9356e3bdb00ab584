"""actionwire: self-registering action handlers wired into one store.

Feature modules declare reducers and effects on a :class:`Module` and register
it; the runtime composes them into a root reducer and an effect scheduler,
tracks in-flight effects as loading state and reports every failure as an
``@@ERROR`` action.
"""

from .app import App, configure_logging, create_app, get_app, load_settings, register, reset_app
from .core import (
    ERROR_ACTION_TYPE,
    GLOBAL_LOADING_KEY,
    INIT_STATE_ACTION_TYPE,
    LOADING_ACTION_TYPE,
    Action,
    ActionCreator,
    ActionwireError,
    APIException,
    DuplicateNamespaceError,
    ErrorPayload,
    HandlerRegistry,
    InvalidBoundArgumentError,
    LoadingPayload,
    LoadingUnderflowError,
    Module,
    NetworkConnectionException,
    RegistrationError,
    ReservedActionTypeError,
    State,
    Store,
    ViewLifecycleException,
    current_action,
    error_action,
    init_state_action,
    put,
    select,
)
from .hooks import CallbackFactory
from .services import Settings, SettingsStore, Transport
from .views import ErrorBoundary

__version__ = "0.1.0"

__all__ = [
    "App",
    "Action",
    "ActionCreator",
    "ActionwireError",
    "APIException",
    "CallbackFactory",
    "DuplicateNamespaceError",
    "ERROR_ACTION_TYPE",
    "ErrorBoundary",
    "ErrorPayload",
    "GLOBAL_LOADING_KEY",
    "HandlerRegistry",
    "INIT_STATE_ACTION_TYPE",
    "InvalidBoundArgumentError",
    "LOADING_ACTION_TYPE",
    "LoadingPayload",
    "LoadingUnderflowError",
    "Module",
    "NetworkConnectionException",
    "RegistrationError",
    "ReservedActionTypeError",
    "Settings",
    "SettingsStore",
    "State",
    "Store",
    "Transport",
    "ViewLifecycleException",
    "configure_logging",
    "create_app",
    "current_action",
    "error_action",
    "get_app",
    "init_state_action",
    "load_settings",
    "put",
    "register",
    "reset_app",
    "select",
]
