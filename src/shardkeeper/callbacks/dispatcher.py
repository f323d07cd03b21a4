"""
Callback Dispatcher - pre/post handlers around entity operations.

Operations are named "<scope>.<operation>", for example "pool.remove_replica"
or "shard.cleanup". An entity class declares its scope with a
`callback_scope` class attribute; handlers registered for a base class scope
also run for subclasses, so "pool.*" handlers fire for shards.
"""

import functools
import inspect
import itertools
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Any, Awaitable, Callable

from ..core.errors import CallbackAbort

logger = logging.getLogger(__name__)

DEFAULT_PRIORITY = 100


class CallbackPhase(Enum):
    """When a handler runs relative to the operation."""

    PRE = "pre"
    POST = "post"
    ERROR = "error"


@dataclass(frozen=True)
class CallbackRegistration:
    """One registered handler."""

    scope: str
    operation: str
    phase: CallbackPhase
    priority: int
    handler: Callable[..., Any]
    sequence: int

    @property
    def target(self) -> str:
        return f"{self.scope}.{self.operation}"


@dataclass
class DispatcherStats:
    """Dispatcher statistics."""

    invocations: int = 0
    handlers_run: int = 0
    pre_aborts: int = 0
    post_aborts: int = 0
    failures: int = 0


def _split_target(target: str) -> tuple[str, str]:
    scope, sep, operation = target.partition(".")
    if not sep or not scope or not operation:
        raise ValueError(f"callback target must look like 'scope.operation', got {target!r}")
    return scope, operation


def scopes_for(entity: Any) -> list[str]:
    """Callback scopes an entity answers to, most specific first."""
    scopes = []
    for cls in type(entity).__mro__:
        scope = cls.__dict__.get("callback_scope")
        if scope and scope not in scopes:
            scopes.append(scope)
    return scopes


class CallbackDispatcher:
    """
    Interceptor table for mutating operations.

    Invocation contract:
    - pre handlers run from highest to lowest priority with the operation's
      arguments; a CallbackAbort skips the remaining pre handlers, the
      operation and every post handler, and the call returns None
    - otherwise the operation runs, then post handlers run from highest to
      lowest priority; a CallbackAbort in a post handler only skips the
      remaining post handlers and the operation result is still returned
    - if the operation raises, error handlers run instead of post handlers,
      called as handler(entity, error, *args, **kwargs); the original
      exception is re-raised afterwards and a CallbackAbort only skips the
      remaining error handlers
    - handler return values are ignored; equal priorities run in
      registration order
    """

    def __init__(self):
        self._registrations: list[CallbackRegistration] = []
        self._sequence = itertools.count()
        self._stats = DispatcherStats()

    def register(
        self,
        target: str,
        phase: CallbackPhase | str,
        handler: Callable[..., Any],
        priority: int = DEFAULT_PRIORITY,
    ) -> CallbackRegistration:
        """
        Register a handler.

        Args:
            target: "scope.operation", e.g. "shard.split"
            phase: CallbackPhase.PRE, POST or ERROR
            handler: Sync or async callable receiving (entity, *args, **kwargs)
            priority: Higher runs first within the phase

        Returns:
            The registration, usable with unregister()
        """
        scope, operation = _split_target(target)
        registration = CallbackRegistration(
            scope=scope,
            operation=operation,
            phase=CallbackPhase(phase),
            priority=priority,
            handler=handler,
            sequence=next(self._sequence),
        )
        self._registrations.append(registration)
        logger.debug(
            f"Registered {registration.phase.value} callback for {target} "
            f"at priority {priority}"
        )
        return registration

    def before(self, target: str, priority: int = DEFAULT_PRIORITY):
        """Decorator form of register(target, PRE, ...)."""

        def decorator(handler):
            self.register(target, CallbackPhase.PRE, handler, priority)
            return handler

        return decorator

    def after(self, target: str, priority: int = DEFAULT_PRIORITY):
        """Decorator form of register(target, POST, ...)."""

        def decorator(handler):
            self.register(target, CallbackPhase.POST, handler, priority)
            return handler

        return decorator

    def on_error(self, target: str, priority: int = DEFAULT_PRIORITY):
        """Decorator form of register(target, ERROR, ...)."""

        def decorator(handler):
            self.register(target, CallbackPhase.ERROR, handler, priority)
            return handler

        return decorator

    def unregister(self, registration: CallbackRegistration) -> bool:
        """Remove a registration. Returns False if it was not registered."""
        try:
            self._registrations.remove(registration)
            return True
        except ValueError:
            return False

    def handlers_for(
        self, entity: Any, operation: str, phase: CallbackPhase
    ) -> list[CallbackRegistration]:
        """Registrations that apply to entity.operation, in run order."""
        scopes = scopes_for(entity)
        matching = [
            r
            for r in self._registrations
            if r.operation == operation and r.phase == phase and r.scope in scopes
        ]
        matching.sort(key=lambda r: (-r.priority, r.sequence))
        return matching

    async def invoke(
        self,
        entity: Any,
        operation: str,
        method: Callable[..., Awaitable[Any]],
        *args,
        **kwargs,
    ) -> Any:
        """Run an operation wrapped by its pre, post and error handlers."""
        self._stats.invocations += 1

        for registration in self.handlers_for(entity, operation, CallbackPhase.PRE):
            try:
                await self._call(registration, entity, args, kwargs)
            except CallbackAbort as e:
                self._stats.pre_aborts += 1
                logger.info(
                    f"{registration.target} on {entity} aborted by pre callback "
                    f"(priority {registration.priority}): {e}"
                )
                return None

        try:
            result = await method(entity, *args, **kwargs)
        except Exception as e:
            self._stats.failures += 1
            for registration in self.handlers_for(entity, operation, CallbackPhase.ERROR):
                try:
                    await self._call(registration, entity, (e, *args), kwargs)
                except CallbackAbort as abort:
                    logger.info(
                        f"Error callbacks for {registration.target} on {entity} stopped "
                        f"at priority {registration.priority}: {abort}"
                    )
                    break
            raise

        for registration in self.handlers_for(entity, operation, CallbackPhase.POST):
            try:
                await self._call(registration, entity, args, kwargs)
            except CallbackAbort as e:
                self._stats.post_aborts += 1
                logger.info(
                    f"Post callbacks for {registration.target} on {entity} stopped "
                    f"at priority {registration.priority}: {e}"
                )
                break

        return result

    async def _call(
        self, registration: CallbackRegistration, entity: Any, args: tuple, kwargs: dict
    ) -> None:
        self._stats.handlers_run += 1
        outcome = registration.handler(entity, *args, **kwargs)
        if inspect.isawaitable(outcome):
            await outcome

    async def get_stats(self) -> dict:
        """Get dispatcher statistics."""
        return {
            "registrations": len(self._registrations),
            "invocations": self._stats.invocations,
            "handlers_run": self._stats.handlers_run,
            "pre_aborts": self._stats.pre_aborts,
            "post_aborts": self._stats.post_aborts,
            "failures": self._stats.failures,
        }


def intercepted(operation: str):
    """
    Route an async entity method through the entity's dispatcher.

    The entity exposes the dispatcher as `self.callbacks`; when it is None the
    method runs directly.
    """

    def decorator(method):
        @functools.wraps(method)
        async def wrapper(self, *args, **kwargs):
            dispatcher = self.callbacks
            if dispatcher is None:
                return await method(self, *args, **kwargs)
            return await dispatcher.invoke(self, operation, method, *args, **kwargs)

        wrapper.intercepted_operation = operation
        return wrapper

    return decorator
