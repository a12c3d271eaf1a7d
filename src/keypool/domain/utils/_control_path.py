"""
State-based method dispatch (a.k.a. "control-path" templating) via decorators.

This module provides a small mechanism for routing a single method call to
one of several registered implementations based on an object's runtime
`_state` value. `MaxPooling` uses it to implement its lifecycle
(unconfigured -> configured -> ready) without if/elif chains in every
state-dependent method.

Core idea
---------
- You define a *base* method on a class (its signature becomes the canonical one).
- You then register multiple "control paths" for that method, each keyed by:
    (ClassName, MethodName, StateVal)
- At runtime, the wrapper looks up `self._state` and dispatches to the
  registered implementation that matches the current state.

Important notes
---------------
- Registering a control path (re)installs a dispatching wrapper on the
  class attribute. The wrapper of the most recent builder wins.
- Registered implementations are stored in a closure-local mapping owned by
  `create_path_builder()`. Different builders do not share mappings.
- Implementations are called like bound methods: `sub_method(self, ...)`.
"""

from typing import (
    runtime_checkable,
    Callable,
    Hashable,
    Optional,
    Protocol,
    Dict,
    Type,
    Any,
)
from typing_extensions import ParamSpec, TypeVar
from collections import namedtuple
from functools import wraps

from abc import abstractmethod

P = ParamSpec("P")
R = TypeVar("R")

TrapFactory = Callable[[Callable[..., Any], Any], BaseException]


def create_path_builder() -> Callable[
    [Type, Callable[..., Any], Hashable, Optional[TrapFactory]],
    Callable[[Callable[P, R]], Callable[P, R]],
]:
    """
    Create and return a "path builder" function used to register stateful
    control paths for methods.

    The returned function (`templator`) is used like this:

        control_path = create_path_builder()

        class Layer:
            def backward(self, x, grad_out): ...

        @control_path(Layer, Layer.backward, state="ready")
        def _backward_ready(self, x, grad_out):
            ...

        @control_path(Layer, Layer.backward, state="configured",
                      trap_exception=lambda method, state: RuntimeError(...))
        def _backward_configured(self, x, grad_out):
            ...

    When `Layer.backward(...)` is called, it dispatches on `self._state`.

    Returns
    -------
    Callable
        A function with signature:

            (cls, method, state, trap_exception=None) -> decorator
    """

    MethodKey = namedtuple(
        "MethodKey",
        [
            "ClassName",
            "MethodName",
            "StateVal",
        ],
    )

    methods_map: Dict[MethodKey, Callable] = {}
    traps_map: Dict[tuple, TrapFactory] = {}

    @runtime_checkable
    class StatefulObject(Protocol):
        """
        Protocol describing an object that participates in state-based dispatch.

        Implementers must provide a `_state` property.
        """

        @property
        @abstractmethod
        def _state(self) -> Optional[Any]:
            """Current state value used for dispatch selection."""
            ...

    STATE_PROPERTY_NAME = next(
        (
            name
            for name, value in StatefulObject.__dict__.items()
            if value is StatefulObject._state
        )
    )

    def templator(
        cls: Type,
        method: Callable[..., Any],
        state: Hashable,
        trap_exception: Optional[TrapFactory] = None,
    ) -> Callable[[Callable[P, R]], Callable[P, R]]:
        """
        Build a decorator that registers a control path implementation.

        Parameters
        ----------
        cls : Type
            The class whose method should be wrapped for state-based dispatch.
        method : Callable
            The base method being templated. Its metadata is copied onto the
            installed wrapper via `functools.wraps(method)`.
        state : Hashable
            The state value that selects the decorated implementation.
        trap_exception : Callable[[method, state], BaseException], optional
            Exception factory used when the object is in a state with no
            registered implementation. The last factory registered for a
            method wins. Without one, `NotImplementedError` is raised.

        Returns
        -------
        Callable[[Callable[P, R]], Callable[P, R]]
            A decorator registering `sub_method` for `(cls, method, state)`.

        Raises
        ------
        TypeError
            If `state` is not hashable.
        """
        try:
            hash(state)
        except TypeError:
            raise TypeError(
                f"The argument for 'state' must be hashable. Got {repr(state)}"
            )

        # Keep a handle on the undecorated method so re-registration does not
        # wrap the wrapper.
        base = getattr(method, "__wrapped__", method)
        smk: MethodKey = MethodKey(cls.__name__, base.__name__, state)

        def decorator(sub_method: Callable[P, R]) -> Callable[P, R]:
            """
            Register `sub_method` as the implementation for the configured state
            and install the dispatcher on `cls`.
            """
            methods_map[smk] = sub_method
            if trap_exception is not None:
                traps_map[(cls.__name__, base.__name__)] = trap_exception

            @wraps(base)
            def wrapper(self: Any, *args: Any, **kwargs: Any) -> Any:
                if not isinstance(self, StatefulObject):
                    raise NotImplementedError(
                        "{} is missing attribute {} (@property)".format(
                            type(self), repr(STATE_PROPERTY_NAME)
                        )
                    )
                key = MethodKey(cls.__name__, base.__name__, self._state)
                if sm := methods_map.get(key):
                    return sm(self, *args, **kwargs)
                trap = traps_map.get((cls.__name__, base.__name__))
                if trap is None:
                    raise NotImplementedError(
                        "Missing control path (state={}) for {}".format(
                            repr(self._state), repr(base)
                        )
                    )
                raise trap(base, self._state)

            setattr(cls, base.__name__, wrapper)
            return sub_method

        return decorator

    return templator
