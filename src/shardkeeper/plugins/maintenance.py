"""Maintenance hooks.

Silences monitoring and the background query killer on the nodes involved in
long maintenance steps (clones, schema imports, split cleanup) and restores
them once the step has finished.
"""

import logging
from typing import Any

from ..callbacks import (
    DEFAULT_PRIORITY,
    CallbackDispatcher,
    CallbackPhase,
    CallbackRegistration,
)
from ..core.fanout import fan_out
from ..transport.base import NodeTransport

logger = logging.getLogger(__name__)


def involved_addresses(entity: Any, operation: str, args: tuple) -> list[str]:
    """Addresses touched by an intercepted operation."""
    if operation == "clone_to":
        targets = args[0] if args else []
        return [entity.address, *(t.address for t in targets)]
    if operation == "import_schema":
        return [entity.address]
    if operation == "cleanup":
        masters = [entity.master, *(c.master for c in entity.children)]
        return [m.address for m in masters if m is not None]
    return []


class MaintenanceHooks:
    """
    Pre/post/error handlers bracketing maintenance operations.

    The addresses quiesced by a pre handler are remembered per invocation and
    restored as-is afterwards, whether the operation succeeded or raised; an
    operation such as cleanup no longer knows its former children by then.
    """

    TARGETS = ("node.clone_to", "node.import_schema", "shard.cleanup")

    def __init__(self, transport: NodeTransport, concurrency: int = 10):
        self.transport = transport
        self.concurrency = concurrency
        self.registrations: list[CallbackRegistration] = []
        self._pending: dict[tuple, list[list[str]]] = {}

    def install(
        self, dispatcher: CallbackDispatcher, priority: int = DEFAULT_PRIORITY
    ) -> list[CallbackRegistration]:
        """Register the handlers on dispatcher."""
        for target in self.TARGETS:
            operation = target.split(".", 1)[1]
            handlers = {
                CallbackPhase.PRE: self._enter_handler(operation),
                CallbackPhase.POST: self._leave_handler(operation),
                CallbackPhase.ERROR: self._failed_handler(operation),
            }
            for phase, handler in handlers.items():
                self.registrations.append(
                    dispatcher.register(target, phase, handler, priority)
                )
        return self.registrations

    def uninstall(self, dispatcher: CallbackDispatcher) -> None:
        for registration in self.registrations:
            dispatcher.unregister(registration)
        self.registrations = []

    # Every phase of one call receives the same argument objects
    @staticmethod
    def _key(operation: str, entity: Any, args: tuple) -> tuple:
        return operation, id(entity), tuple(id(a) for a in args)

    def _enter_handler(self, operation: str):
        async def handler(entity, *args, **kwargs):
            addresses = involved_addresses(entity, operation, args)
            self._pending.setdefault(self._key(operation, entity, args), []).append(addresses)
            await self.quiesce(addresses)

        return handler

    def _take(self, operation: str, entity: Any, args: tuple) -> list[str]:
        key = self._key(operation, entity, args)
        saved = self._pending.get(key)
        if not saved:
            return involved_addresses(entity, operation, args)
        addresses = saved.pop()
        if not saved:
            del self._pending[key]
        return addresses

    def _leave_handler(self, operation: str):
        async def handler(entity, *args, **kwargs):
            await self.restore(self._take(operation, entity, args))

        return handler

    def _failed_handler(self, operation: str):
        async def handler(entity, error, *args, **kwargs):
            addresses = self._take(operation, entity, args)
            logger.warning(f"{entity}.{operation} failed ({error}); leaving maintenance")
            await self.restore(addresses)

        return handler

    async def _each(self, addresses: list[str], step: str, func) -> None:
        result = await fan_out(addresses, func, limit=self.concurrency)
        for address, error in result.failed.items():
            logger.warning(f"{step} on {address} failed: {error}")

    async def quiesce(self, addresses: list[str]) -> None:
        """Suppress monitoring and stop the query killer."""
        logger.info(f"Entering maintenance on {', '.join(addresses)}")
        await self._each(addresses, "suppress_monitoring", self.transport.suppress_monitoring)
        await self._each(addresses, "stop_query_killer", self.transport.stop_query_killer)

    async def restore(self, addresses: list[str]) -> None:
        """Restart the query killer and resume monitoring."""
        await self._each(addresses, "start_query_killer", self.transport.start_query_killer)
        await self._each(addresses, "resume_monitoring", self.transport.resume_monitoring)
        logger.info(f"Left maintenance on {', '.join(addresses)}")
