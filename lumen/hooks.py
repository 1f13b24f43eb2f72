"""Hook bus: named actions and filters ordered by priority.

Every hook name is declared up front with its kind and argument names.
Registering a callback for an undeclared name, under the wrong register, or
with a signature that cannot accept the declared arguments raises right away.

Callbacks may be plain functions or coroutines. A callback that raises is
logged and skipped:
- actions continue with the next callback
- filters keep the value they had before the failing callback
"""

import inspect
import itertools
import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 10


class HookKind(str, Enum):
    ACTION = "action"
    FILTER = "filter"


@dataclass(frozen=True)
class HookSpec:
    kind: HookKind
    args: tuple[str, ...]
    description: str = ""


def _content_hooks() -> dict[str, HookSpec]:
    hooks = {}
    for kind in ("post", "page"):
        hooks[f"{kind}_created"] = HookSpec(HookKind.ACTION, ("item",), f"A {kind} was created")
        hooks[f"{kind}_updated"] = HookSpec(HookKind.ACTION, ("item",), f"A {kind} was updated")
        hooks[f"pre_{kind}_delete"] = HookSpec(HookKind.ACTION, ("item",), f"A {kind} is about to be deleted")
        hooks[f"{kind}_deleted"] = HookSpec(HookKind.ACTION, ("item",), f"A {kind} was deleted")
    return hooks


BUILTIN_HOOKS: dict[str, HookSpec] = {
    "templateData": HookSpec(HookKind.FILTER, ("template",), "Final template data bundle"),
    "menuHtml": HookSpec(HookKind.FILTER, ("items",), "Generated navigation markup"),
    "contentUpdated": HookSpec(HookKind.ACTION, ("kind", "id", "op"), "Any content store mutation"),
    "api_posts": HookSpec(HookKind.FILTER, ("options",), "Post list returned by the admin API"),
    "api_pages": HookSpec(HookKind.FILTER, ("options",), "Page list returned by the admin API"),
    **_content_hooks(),
}


@dataclass(order=True)
class _Registration:
    priority: int
    seq: int
    callback: Callable = field(compare=False)


class HookBus:
    """Registry of actions and filters."""

    def __init__(self):
        self._specs: dict[str, HookSpec] = dict(BUILTIN_HOOKS)
        self._callbacks: dict[str, list[_Registration]] = defaultdict(list)
        self._seq = itertools.count()

    def declare(self, name: str, kind: HookKind, args: tuple[str, ...], description: str = "") -> HookSpec:
        """Declare a new hook name.

        Raises:
            ValueError: If the name is already declared with a different shape.
        """
        spec = HookSpec(HookKind(kind), tuple(args), description)
        existing = self._specs.get(name)
        if existing and (existing.kind, existing.args) != (spec.kind, spec.args):
            raise ValueError(f"Hook '{name}' is already declared as {existing.kind.value}{existing.args}")
        self._specs.setdefault(name, spec)
        return self._specs[name]

    def spec(self, name: str) -> HookSpec:
        try:
            return self._specs[name]
        except KeyError:
            raise KeyError(f"Unknown hook: {name}") from None

    def add_action(self, name: str, callback: Callable, priority: int = DEFAULT_PRIORITY) -> None:
        self._register(name, HookKind.ACTION, callback, priority)

    def add_filter(self, name: str, callback: Callable, priority: int = DEFAULT_PRIORITY) -> None:
        self._register(name, HookKind.FILTER, callback, priority)

    def remove_action(self, name: str, callback: Callable) -> bool:
        return self._unregister(name, HookKind.ACTION, callback)

    def remove_filter(self, name: str, callback: Callable) -> bool:
        return self._unregister(name, HookKind.FILTER, callback)

    def has(self, name: str) -> bool:
        return bool(self._callbacks.get(name))

    async def do_action(self, name: str, *args: Any) -> None:
        """Run every callback for ``name`` in ascending priority."""
        self._check_call(name, HookKind.ACTION, args)
        for reg in list(self._callbacks.get(name, ())):
            try:
                result = reg.callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Action callback {_describe(reg.callback)} for '{name}' failed")

    async def apply_filters(self, name: str, value: Any, *args: Any) -> Any:
        """Thread ``value`` through every filter for ``name`` and return the result."""
        self._check_call(name, HookKind.FILTER, args)
        for reg in list(self._callbacks.get(name, ())):
            try:
                result = reg.callback(value, *args)
                if inspect.isawaitable(result):
                    result = await result
            except Exception:
                logger.exception(f"Filter callback {_describe(reg.callback)} for '{name}' failed")
                continue
            value = result
        return value

    def _register(self, name: str, kind: HookKind, callback: Callable, priority: int) -> None:
        spec = self.spec(name)
        if spec.kind != kind:
            raise ValueError(f"Hook '{name}' is a {spec.kind.value}, not a {kind.value}")
        arity = len(spec.args) + (1 if kind == HookKind.FILTER else 0)
        _check_signature(name, callback, arity)
        self._callbacks[name].append(_Registration(int(priority), next(self._seq), callback))
        self._callbacks[name].sort()

    def _unregister(self, name: str, kind: HookKind, callback: Callable) -> bool:
        if name not in self._specs or self._specs[name].kind != kind:
            return False
        regs = self._callbacks.get(name, [])
        kept = [r for r in regs if r.callback != callback]
        self._callbacks[name] = kept
        return len(kept) != len(regs)

    def _check_call(self, name: str, kind: HookKind, args: tuple) -> None:
        spec = self.spec(name)
        if spec.kind != kind:
            raise ValueError(f"Hook '{name}' is a {spec.kind.value}, not a {kind.value}")
        if len(args) != len(spec.args):
            raise TypeError(f"Hook '{name}' expects arguments {spec.args}, got {len(args)}")


def _check_signature(name: str, callback: Callable, arity: int) -> None:
    try:
        signature = inspect.signature(callback)
    except (TypeError, ValueError):
        return
    try:
        signature.bind(*range(arity))
    except TypeError as e:
        raise TypeError(f"Callback {_describe(callback)} cannot accept {arity} argument(s) for hook '{name}'") from e


def _describe(callback: Callable) -> str:
    return getattr(callback, "__qualname__", repr(callback))
