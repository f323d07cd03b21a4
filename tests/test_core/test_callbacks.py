"""Tests for the callback dispatcher."""

import pytest

from shardkeeper.callbacks import CallbackDispatcher, CallbackPhase, intercepted
from shardkeeper.core.errors import CallbackAbort, ShardKeeperError
from shardkeeper.topology import NodeRole


class Widget:
    callback_scope = "widget"

    def __init__(self, dispatcher=None):
        self.callbacks = dispatcher
        self.calls = []

    def __str__(self):
        return "widget"

    @intercepted("spin")
    async def spin(self, amount):
        self.calls.append(amount)
        return amount * 2

    @intercepted("jam")
    async def jam(self, amount):
        raise RuntimeError(f"jammed at {amount}")


class Gadget(Widget):
    callback_scope = "gadget"


@pytest.fixture
def dispatcher():
    """Create an empty dispatcher."""
    return CallbackDispatcher()


def recorder(log, label, abort=False):
    def handler(entity, *args, **kwargs):
        log.append(label)
        if abort:
            raise CallbackAbort(label)

    return handler


class TestCallbackOrdering:
    """Priority ordering and abort semantics."""

    @pytest.mark.asyncio
    async def test_post_abort_stops_lower_priorities_only(self, dispatcher):
        """Test post abort at 100 skips 85 but keeps the result."""
        log = []
        dispatcher.register("widget.spin", CallbackPhase.POST, recorder(log, 85), priority=85)
        dispatcher.register("widget.spin", CallbackPhase.POST, recorder(log, 150), priority=150)
        dispatcher.register(
            "widget.spin", CallbackPhase.POST, recorder(log, 100, abort=True), priority=100
        )
        widget = Widget(dispatcher)

        result = await widget.spin(21)

        assert result == 42
        assert log == [150, 100]
        assert widget.calls == [21]

    @pytest.mark.asyncio
    async def test_post_handlers_run_high_to_low(self, dispatcher):
        """Test post handlers at 150, 100, 85 run in that order."""
        log = []
        for priority in (100, 85, 150):
            dispatcher.register(
                "widget.spin", CallbackPhase.POST, recorder(log, priority), priority=priority
            )

        await Widget(dispatcher).spin(1)

        assert log == [150, 100, 85]

    @pytest.mark.asyncio
    async def test_pre_abort_skips_operation_and_post(self, dispatcher):
        """Test pre abort skips the rest of the chain and the operation."""
        log = []
        dispatcher.register("widget.spin", "pre", recorder(log, "high"), priority=200)
        dispatcher.register("widget.spin", "pre", recorder(log, "abort", abort=True))
        dispatcher.register("widget.spin", "pre", recorder(log, "low"), priority=10)
        dispatcher.register("widget.spin", "post", recorder(log, "post"))
        widget = Widget(dispatcher)

        result = await widget.spin(5)

        assert result is None
        assert log == ["high", "abort"]
        assert widget.calls == []

    @pytest.mark.asyncio
    async def test_equal_priorities_both_run_in_registration_order(self, dispatcher):
        """Test registrations at the same priority all run, stably ordered."""
        log = []
        dispatcher.register("widget.spin", "pre", recorder(log, "first"))
        dispatcher.register("widget.spin", "pre", recorder(log, "second"))

        await Widget(dispatcher).spin(1)

        assert log == ["first", "second"]

    @pytest.mark.asyncio
    async def test_handlers_receive_arguments(self, dispatcher):
        """Test handlers are called with the entity and operation arguments."""
        seen = []

        @dispatcher.before("widget.spin")
        async def capture(entity, amount):
            seen.append((entity, amount))

        widget = Widget(dispatcher)
        await widget.spin(7)

        assert seen == [(widget, 7)]

    @pytest.mark.asyncio
    async def test_handler_return_value_ignored(self, dispatcher):
        """Test handler return values do not replace the result."""
        dispatcher.after("widget.spin")(lambda entity, amount: "ignored")

        assert await Widget(dispatcher).spin(3) == 6


class TestErrorCallbacks:
    """Handlers for operations that raise."""

    @pytest.mark.asyncio
    async def test_error_handlers_run_instead_of_post(self, dispatcher):
        """Test a failing operation runs error handlers and re-raises."""
        log = []
        seen = []
        dispatcher.register("widget.jam", "post", recorder(log, "post"))
        dispatcher.register(
            "widget.jam",
            "error",
            lambda entity, error, amount: seen.append((str(error), amount)),
        )

        with pytest.raises(RuntimeError, match="jammed at 3"):
            await Widget(dispatcher).jam(3)

        assert log == []
        assert seen == [("jammed at 3", 3)]

    @pytest.mark.asyncio
    async def test_error_abort_keeps_original_exception(self, dispatcher):
        """Test an aborting error handler stops the chain but not the exception."""
        log = []
        dispatcher.register("widget.jam", "error", recorder(log, 150, abort=True), priority=150)
        dispatcher.register("widget.jam", "error", recorder(log, 50), priority=50)

        with pytest.raises(RuntimeError):
            await Widget(dispatcher).jam(1)

        assert log == [150]
        assert (await dispatcher.get_stats())["failures"] == 1

    @pytest.mark.asyncio
    async def test_on_error_decorator(self, dispatcher):
        """Test the decorator form registers an error handler."""
        seen = []

        @dispatcher.on_error("widget.jam")
        def failed(entity, error, *args):
            seen.append(type(error).__name__)

        with pytest.raises(RuntimeError):
            await Widget(dispatcher).jam(1)

        assert seen == ["RuntimeError"]


class TestCallbackScopes:
    """Scope resolution and registration management."""

    @pytest.mark.asyncio
    async def test_base_scope_applies_to_subclass(self, dispatcher):
        """Test widget handlers also run for gadgets."""
        log = []
        dispatcher.register("widget.spin", "pre", recorder(log, "widget"))
        dispatcher.register("gadget.spin", "pre", recorder(log, "gadget"))

        await Gadget(dispatcher).spin(1)
        await Widget(dispatcher).spin(1)

        assert log == ["widget", "gadget", "widget"]

    @pytest.mark.asyncio
    async def test_unregister(self, dispatcher):
        """Test removed handlers stop running."""
        log = []
        registration = dispatcher.register("widget.spin", "pre", recorder(log, "x"))

        assert dispatcher.unregister(registration) is True
        assert dispatcher.unregister(registration) is False

        await Widget(dispatcher).spin(1)
        assert log == []

    @pytest.mark.asyncio
    async def test_without_dispatcher_runs_directly(self):
        """Test an entity with no dispatcher still runs the operation."""
        assert await Widget().spin(4) == 8

    def test_invalid_target(self, dispatcher):
        """Test targets must be scope.operation."""
        with pytest.raises(ValueError):
            dispatcher.register("spin", "pre", lambda entity: None)

    def test_abort_is_not_an_orchestration_error(self):
        """Test CallbackAbort is outside the error taxonomy."""
        assert not issubclass(CallbackAbort, ShardKeeperError)

    @pytest.mark.asyncio
    async def test_stats(self, dispatcher):
        """Test dispatcher statistics."""
        dispatcher.register("widget.spin", "pre", recorder([], "abort", abort=True))
        await Widget(dispatcher).spin(1)

        stats = await dispatcher.get_stats()

        assert stats["registrations"] == 1
        assert stats["invocations"] == 1
        assert stats["pre_aborts"] == 1


class TestEntityInterception:
    """Callbacks on real topology entities."""

    @pytest.mark.asyncio
    async def test_pre_abort_blocks_replica_activation(self, topology):
        """Test an aborting pool callback leaves the replica untouched."""

        @topology.callbacks.before("pool.mark_replica_active")
        def freeze(pool, node, weight=None):
            raise CallbackAbort("change freeze")

        pool = topology.pool("users")
        standby = topology.node("10.0.0.3")

        await pool.mark_replica_active(standby, 50)

        assert standby.role == NodeRole.STANDBY_REPLICA
        assert standby.weight == 0

    @pytest.mark.asyncio
    async def test_pool_handlers_fire_for_shards(self, topology):
        """Test pool scoped handlers run for shard operations."""
        seen = []
        topology.callbacks.register(
            "pool.remove_replica", "post", lambda pool, node: seen.append(pool.name)
        )
        shard = topology.shard(0, 999)

        await shard.remove_replica(topology.node("10.1.0.2"))

        assert seen == ["shard-0-999"]
