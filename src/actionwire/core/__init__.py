"""Handler registration and dispatch core.

This package contains the pieces every dispatch goes through:
    - Action: immutable unit of dispatch, plus the reserved system actions
    - HandlerRegistry: append-only table of handlers and namespaces
    - RootReducer: registered state transitions composed into one function
    - EffectScheduler: async handlers run as concurrent tasks
    - ErrorInterceptor: failures converted into ``@@ERROR`` actions
    - Store: the current state and the pipeline tying the above together
"""

from __future__ import annotations

from .actions import (
    ERROR_ACTION_TYPE,
    INIT_STATE_ACTION_TYPE,
    LOADING_ACTION_TYPE,
    Action,
    ErrorPayload,
    LoadingPayload,
    error_action,
    init_state_action,
    loading_action,
)
from .errors import (
    ActionwireError,
    APIException,
    DuplicateNamespaceError,
    InvalidBoundArgumentError,
    InvalidHandlerError,
    LoadingUnderflowError,
    NetworkConnectionException,
    RegistrationError,
    ReservedActionTypeError,
    SchedulerUnavailableError,
    ViewLifecycleException,
)
from .middleware import ErrorInterceptor
from .module import ActionCreator, Module
from .reducer import ReduceOutcome, RootReducer, compose_reducer
from .registry import HandlerDescriptor, HandlerKind, HandlerRegistry
from .scheduler import EffectGroup, EffectScheduler, current_action, put, select
from .state import GLOBAL_LOADING_KEY, State
from .store import Store

__all__: list[str] = [
    # Actions
    "Action",
    "ErrorPayload",
    "LoadingPayload",
    "ERROR_ACTION_TYPE",
    "INIT_STATE_ACTION_TYPE",
    "LOADING_ACTION_TYPE",
    "error_action",
    "init_state_action",
    "loading_action",
    # Errors
    "ActionwireError",
    "APIException",
    "DuplicateNamespaceError",
    "InvalidBoundArgumentError",
    "InvalidHandlerError",
    "LoadingUnderflowError",
    "NetworkConnectionException",
    "RegistrationError",
    "ReservedActionTypeError",
    "SchedulerUnavailableError",
    "ViewLifecycleException",
    # Registration
    "ActionCreator",
    "HandlerDescriptor",
    "HandlerKind",
    "HandlerRegistry",
    "Module",
    # Pipeline
    "EffectGroup",
    "EffectScheduler",
    "ErrorInterceptor",
    "ReduceOutcome",
    "RootReducer",
    "compose_reducer",
    "current_action",
    "put",
    "select",
    # State
    "GLOBAL_LOADING_KEY",
    "State",
    "Store",
]
