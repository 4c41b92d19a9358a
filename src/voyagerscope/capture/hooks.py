"""Hook points and the observing decorators bound onto them.

A hook point names an attribute on an object we do not own (a class, a
module, a channel instance). A slot binds an observing decorator there and
can tell later whether it is still bound, re-wrap whatever displaced it, and
unbind itself.

Decorators always call the wrapped primitive first and return its result
unchanged. Observation happens afterwards; any failure in it is logged and
dropped, while errors raised by the primitive itself propagate untouched.
"""

from __future__ import annotations

import functools
import inspect
from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Protocol

import structlog

from voyagerscope.capture.models import CapturedExchange, HookOrigin
from voyagerscope.errors import HookInstallError

logger = structlog.get_logger()

# Set while an observer runs, and while a shielded primitive runs, so that
# decoding nested inside either is not observed a second time without its address.
_observing: ContextVar[bool] = ContextVar("voyagerscope_observing", default=False)

_MISSING = object()

ResultCallback = Callable[[tuple[Any, ...], dict[str, Any], Any], None]


class Observer(Protocol):
    def is_relevant_address(self, address: str | None) -> bool: ...

    def has_data_shape(self, payload: Any) -> bool: ...

    def capture(self, address: str | None, method: str, payload: Any, origin: HookOrigin) -> None: ...

    def dispatch(self, exchange: CapturedExchange) -> None: ...


@dataclass(frozen=True)
class HookPoint:
    name: str
    origin: HookOrigin | None
    owner: Any
    attribute: str
    build: Callable[[Any, Observer], Any]


def is_observing() -> bool:
    return _observing.get()


def _observe(callback: ResultCallback, hook: str, args: tuple[Any, ...], kwargs: dict[str, Any], result: Any) -> None:
    if _observing.get():
        return
    token = _observing.set(True)
    try:
        callback(args, kwargs, result)
    except Exception:
        logger.exception("Observation failed", hook=hook)
    finally:
        _observing.reset(token)


def _call_shielded(func: Callable[..., Any], args: tuple[Any, ...], kwargs: dict[str, Any]) -> Any:
    token = _observing.set(True)
    try:
        return func(*args, **kwargs)
    finally:
        _observing.reset(token)


def wrap_call(
    original: Callable[..., Any], callback: ResultCallback, hook: str, *, shield: bool = False
) -> Callable[..., Any]:
    """Decorate a plain or coroutine function with a post-call observer.

    With ``shield`` the primitive itself runs with observation suppressed, so
    a decode step it performs internally (``json.loads`` inside
    ``Response.json``) is only seen through this hook.
    """
    if inspect.iscoroutinefunction(original):

        @functools.wraps(original)
        async def async_observed(*args: Any, **kwargs: Any) -> Any:
            token = _observing.set(True) if shield else None
            try:
                result = await original(*args, **kwargs)
            finally:
                if token is not None:
                    _observing.reset(token)
            _observe(callback, hook, args, kwargs, result)
            return result

        return async_observed

    @functools.wraps(original)
    def observed(*args: Any, **kwargs: Any) -> Any:
        result = _call_shielded(original, args, kwargs) if shield else original(*args, **kwargs)
        _observe(callback, hook, args, kwargs, result)
        return result

    return observed


def wrap_property(original: property, callback: ResultCallback, hook: str, *, shield: bool = False) -> property:
    """Decorate a property getter with a post-read observer."""
    getter = original.fget
    if getter is None:
        raise HookInstallError(f"{hook}: property has no getter")

    @functools.wraps(getter)
    def observed(instance: Any) -> Any:
        value = _call_shielded(getter, (instance,), {}) if shield else getter(instance)
        _observe(callback, hook, (instance,), {}, value)
        return value

    return property(observed, original.fset, original.fdel, original.__doc__)


def _is_namespace(owner: Any) -> bool:
    return isinstance(owner, (type, ModuleType))


def _own_attribute(owner: Any, attribute: str) -> bool:
    try:
        return attribute in vars(owner)
    except TypeError:
        return False


class HookSlot:
    """One bound hook point."""

    def __init__(self, point: HookPoint, observer: Observer) -> None:
        self.point = point
        self._observer = observer
        self._wrapper: Any = None
        self._wrapped: Any = None
        self._restore_by_delete = False
        self.heal_count = 0

    @property
    def installed(self) -> bool:
        return self._wrapper is not None

    def install(self) -> None:
        if self.installed:
            return
        current = self._current()
        if current is _MISSING:
            raise HookInstallError(f"{self.point.name}: {self.point.attribute!r} not found on {self.point.owner!r}")
        self._bind(current)
        logger.debug("Hook installed", hook=self.point.name)

    def is_active(self) -> bool:
        return self.installed and self._current() is self._wrapper

    def heal(self) -> bool:
        """Re-wrap whatever is bound now if our decorator was displaced."""
        if not self.installed or self.is_active():
            return False
        current = self._current()
        if current is _MISSING:
            logger.warning("Hook point vanished", hook=self.point.name)
            return False
        self._bind(current)
        self.heal_count += 1
        logger.info("Hook re-wrapped", hook=self.point.name, heal_count=self.heal_count)
        return True

    def uninstall(self) -> None:
        if not self.installed:
            return
        if self.is_active():
            if self._restore_by_delete:
                delattr(self.point.owner, self.point.attribute)
            else:
                setattr(self.point.owner, self.point.attribute, self._wrapped)
        else:
            logger.info("Leaving replaced hook point in place", hook=self.point.name)
        self._wrapper = None
        self._wrapped = None

    def _current(self) -> Any:
        owner, attribute = self.point.owner, self.point.attribute
        if _is_namespace(owner):
            try:
                return inspect.getattr_static(owner, attribute)
            except AttributeError:
                return _MISSING
        if _own_attribute(owner, attribute):
            return vars(owner)[attribute]
        return getattr(owner, attribute, _MISSING)

    def _bind(self, current: Any) -> None:
        owner, attribute = self.point.owner, self.point.attribute
        self._restore_by_delete = not _own_attribute(owner, attribute)
        wrapper = self.point.build(current, self._observer)
        setattr(owner, attribute, wrapper)
        self._wrapped = current
        self._wrapper = wrapper
