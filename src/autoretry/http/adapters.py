"""Bind the retry executor to named call sites.

FunctionPatcher turns an async callable into one with the same call
signature whose every call runs through the executor. It remembers which
wrappers it produced and which originals it wrapped, so wrapping or patching
the same target twice never stacks retry loops. Wrappers of plain
functions are cached for the lifetime of the patcher.
"""

from __future__ import annotations

import functools
import inspect
import weakref
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Final, ParamSpec, TypeVar

from autoretry.logging import get_logger

if TYPE_CHECKING:
    from autoretry.http.types import RetryStrategy

__all__ = ["FunctionPatcher"]

P = ParamSpec("P")
R = TypeVar("R")

logger = get_logger(__name__)

_MISSING: Final = object()


class FunctionPatcher:
    """Wrap or patch async callables so their calls are retried.

    Parameters
    ----------
    executor : RetryStrategy
        Executor every wrapped call is routed through.

    Examples
    --------
    >>> from autoretry.http.executor import RetryExecutor
    >>> from autoretry.http.policy import RetryConfig
    >>> patcher = FunctionPatcher(RetryExecutor(RetryConfig()))
    >>> async def generate(prompt: str) -> str:
    ...     return prompt.upper()
    >>> wrapped = patcher.wrap(generate)
    >>> patcher.wrap(wrapped) is wrapped
    True
    """

    def __init__(self, executor: RetryStrategy) -> None:
        self._executor = executor
        self._wrappers: weakref.WeakSet[Callable[..., Any]] = weakref.WeakSet()
        # Wrappers close over their original, so a weak mapping could never evict.
        self._by_original: dict[Callable[..., Any], Callable[..., Any]] = {}
        # (id(owner), attr) -> (owner, value previously stored on the owner itself)
        self._patched: dict[tuple[int, str], tuple[object, object]] = {}

    def is_wrapped(self, fn: object) -> bool:
        """Return True when ``fn`` (or the function behind a bound method) came from this patcher."""
        target = getattr(fn, "__func__", fn)
        try:
            return target in self._wrappers
        except TypeError:
            return False

    def wrap(
        self, fn: Callable[P, Awaitable[R]], *, name: str | None = None
    ) -> Callable[P, Awaitable[R]]:
        """Return a retrying version of ``fn`` with the same call signature.

        Parameters
        ----------
        fn : Callable[P, Awaitable[R]]
            Async callable to wrap. Bound methods keep their ``self``.
        name : str | None, optional
            Operation name used in events. Defaults to ``fn.__qualname__``.

        Returns
        -------
        Callable[P, Awaitable[R]]
            The wrapper; ``fn`` itself when it already is one, or the wrapper
            produced earlier for the same ``fn``.
        """
        if self.is_wrapped(fn):
            return fn
        existing = self._lookup(fn)
        if existing is not None:
            return existing

        label = name or getattr(fn, "__qualname__", None) or repr(fn)
        executor = self._executor

        @functools.wraps(fn)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            return await executor.execute(functools.partial(fn, *args, **kwargs), name=label)

        self._wrappers.add(wrapper)
        if not inspect.ismethod(fn):
            try:
                self._by_original[fn] = wrapper
            except TypeError:
                logger.debug(
                    "Callable %r is not hashable; wrapper not cached",
                    fn,
                    extra={"operation": label},
                )
        return wrapper

    def patch(self, owner: object, attr: str, *, name: str | None = None) -> Callable[..., Any]:
        """Replace ``owner.attr`` with its retrying wrapper.

        Works on modules, namespaces, instances and classes. On a class the
        plain-function wrapper still binds ``self`` like the original;
        staticmethod and classmethod descriptors are re-wrapped in kind.
        Patching an attribute that is already patched is a no-op.

        Parameters
        ----------
        owner : object
            Object holding the callable.
        attr : str
            Attribute name.
        name : str | None, optional
            Operation name used in events. Defaults to ``attr``.

        Returns
        -------
        Callable[..., Any]
            The value now stored at ``owner.attr``.
        """
        label = name or attr
        if isinstance(owner, type):
            raw = inspect.getattr_static(owner, attr)
            if isinstance(raw, (staticmethod, classmethod)):
                if self.is_wrapped(raw.__func__):
                    return raw
                replacement: Any = type(raw)(self.wrap(raw.__func__, name=label))
            else:
                if self.is_wrapped(raw):
                    return raw
                replacement = self.wrap(raw, name=label)
        else:
            current = getattr(owner, attr)
            if self.is_wrapped(current):
                return current
            replacement = self.wrap(current, name=label)

        previous = _own_attribute(owner, attr)
        self._patched[(id(owner), attr)] = (owner, previous)
        setattr(owner, attr, replacement)
        logger.debug(
            "Patched %s on %r",
            attr,
            owner,
            extra={"operation": label, "status": "patched"},
        )
        return replacement

    def unpatch(self, owner: object, attr: str) -> bool:
        """Restore ``owner.attr`` to its pre-patch value.

        Returns
        -------
        bool
            False when the attribute was not patched by this patcher.
        """
        entry = self._patched.pop((id(owner), attr), None)
        if entry is None or entry[0] is not owner:
            return False
        previous = entry[1]
        if previous is _MISSING:
            delattr(owner, attr)
        else:
            setattr(owner, attr, previous)
        return True

    def _lookup(self, fn: Callable[..., Any]) -> Callable[..., Any] | None:
        try:
            return self._by_original.get(fn)
        except TypeError:
            return None


def _own_attribute(owner: object, attr: str) -> object:
    namespace = getattr(owner, "__dict__", None)
    if namespace is None or attr not in namespace:
        return _MISSING
    return namespace[attr]
