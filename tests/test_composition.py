"""tests for the composition engine: lifecycle, sync, connections, isolation."""

import asyncio
from dataclasses import replace

import pytest

from blockcanvas.core.composition import CompositionEngine, InstanceStatus
from blockcanvas.core.memento import undo
from blockcanvas.core.models import CanvasState, ProgramData
from blockcanvas.core.programs import Program, Subscription
from blockcanvas.core.runtime import Runtime
from blockcanvas.core.store import (
    add_block,
    connect_blocks,
    delete_block,
    disconnect,
    find_block,
    move_block,
    replace_block,
)


def _state_of(rt, block_id):
    return find_block(rt.state, block_id).program.state


def _run(rt, block_id, name, payload=None):
    rt.dispatch(rt.engine.lifted_actions(block_id)[name], payload)


class TestLifecycle:
    """tests for mounting and tearing down instances."""

    def test_mount_on_new_block(self, runtime):
        """a new block gets a running instance holding its state."""
        runtime.apply(add_block, "counter", x=0, y=0, registry=runtime.registry)
        inst = runtime.engine.instance(1)
        assert inst.status == InstanceStatus.RUNNING
        assert inst.state == {"n": 0}

    def test_missing_state_is_filled_from_program(self, registry):
        """a block without state gets the program's initial state mirrored in."""
        engine = CompositionEngine(registry)
        state = engine.reconcile(add_block(CanvasState.initial(), "counter", x=0, y=0))
        assert find_block(state, 1).program.state == {"n": 0}

    def test_unknown_program_fails_once(self, runtime):
        """an unknown program marks the block and is not retried every render."""
        runtime.apply(add_block, "nope", x=0, y=0)
        inst = runtime.engine.instance(1)
        assert inst.status == InstanceStatus.FAILED
        assert runtime.engine.render(1).plain == "ERROR: program 'nope' not initialized."

        runtime.apply(move_block, 1, 50, 50)
        assert runtime.engine.instance(1) is inst

    def test_program_swap_remounts(self, runtime):
        """changing a block's program name is what retries the lookup."""
        runtime.apply(add_block, "nope", x=0, y=0)
        runtime.apply(
            lambda s: replace_block(s, replace(find_block(s, 1), program=ProgramData("counter"))),
        )
        assert runtime.engine.instance(1).is_running
        assert _state_of(runtime, 1) == {"n": 0}

    def test_teardown_on_delete(self, runtime):
        """deleted blocks lose their instance."""
        runtime.apply(add_block, "counter", x=0, y=0, registry=runtime.registry)
        runtime.apply(delete_block, 1)
        assert runtime.engine.instance(1) is None
        assert runtime.engine.render(1).plain == "not mounted"

    def test_render_default_and_named_views(self, runtime):
        """views render rich text; the first declared view is the default."""
        runtime.apply(add_block, "counter", x=0, y=0, registry=runtime.registry)
        assert runtime.engine.render(1).plain == "count: 0"
        assert runtime.engine.render(1, "compact").plain == "0"
        assert "no view" in runtime.engine.render(1, "missing").plain


class TestSubscriptions:
    """tests for subscription start/stop."""

    @pytest.fixture
    def events(self, registry):
        events = []

        def listen(dispatch, tag):
            events.append(("start", tag))
            return lambda: events.append(("stop", tag))

        registry.register(Program(
            name="listener",
            initial_state={"on": True},
            views={"main": lambda s: "on" if s["on"] else "off"},
            actions={"flip": lambda s, p: {**s, "on": not s["on"]}},
            subscriptions=lambda s: [Subscription.of(listen, "a")] if s["on"] else [],
        ))
        return events

    def test_cleanup_on_delete(self, runtime, events):
        """subscriptions start at mount and clean up at teardown."""
        runtime.apply(add_block, "listener", x=0, y=0, registry=runtime.registry)
        assert events == [("start", "a")]
        runtime.apply(delete_block, 1)
        assert events == [("start", "a"), ("stop", "a")]

    def test_follow_state(self, runtime, events):
        """the subscription list is re-derived when the state changes."""
        runtime.apply(add_block, "listener", x=0, y=0, registry=runtime.registry)
        _run(runtime, 1, "flip")
        assert events == [("start", "a"), ("stop", "a")]
        _run(runtime, 1, "flip")
        assert events[-1] == ("start", "a")

    def test_unrelated_changes_keep_subscriptions(self, runtime, events):
        """moving the block does not restart anything."""
        runtime.apply(add_block, "listener", x=0, y=0, registry=runtime.registry)
        runtime.apply(move_block, 1, 30, 30)
        assert events == [("start", "a")]

    @pytest.mark.asyncio
    async def test_ticker_ticks_while_running(self, registry):
        """the ticker's timer dispatches into its own block until toggled off."""
        rt = Runtime(registry)
        rt.apply(add_block, "ticker", {"ticks": 0, "running": True, "interval": 0.01}, x=0, y=0)
        await asyncio.sleep(0.1)
        assert _state_of(rt, 1)["ticks"] >= 1
        _run(rt, 1, "toggle")
        stopped = _state_of(rt, 1)["ticks"]
        await asyncio.sleep(0.05)
        assert _state_of(rt, 1)["ticks"] == stopped
        rt.close()


class TestStateSync:
    """tests for two-way state sync between instances and the tree."""

    def test_undo_is_adopted(self, runtime):
        """restoring a snapshot puts the old state back into the instance."""
        runtime.apply(add_block, "counter", x=0, y=0, registry=runtime.registry)
        _run(runtime, 1, "increment")
        runtime.apply(move_block, 1, 10, 10)
        _run(runtime, 1, "increment")
        assert runtime.engine.instance(1).state == {"n": 2}

        runtime.apply(undo)
        assert _state_of(runtime, 1) == {"n": 1}
        assert runtime.engine.instance(1).state == {"n": 1}

    def test_modify_state_is_mirrored(self, runtime):
        """direct instance writes reach the tree on the next render."""
        runtime.apply(add_block, "counter", x=0, y=0, registry=runtime.registry)
        runtime.engine.modify_state(1, {"n": 42})
        assert _state_of(runtime, 1) == {"n": 42}

    def test_page_program_actions(self, registry, make_state):
        """page-level programs get lifted actions and render too."""
        rt = Runtime(registry, state=make_state(page_program=ProgramData("counter", {"n": 0})))
        actions = rt.engine.lifted_page_actions(rt.state, "p1")
        rt.dispatch(actions["increment"], 3)
        assert rt.state.current_page.program.state == {"n": 3}
        assert rt.engine.render_page(rt.state, "p1").plain == "count: 3"


class TestConnections:
    """tests for connection wiring and peer notification."""

    @pytest.fixture
    def wired(self, runtime):
        runtime.apply(add_block, "counter", x=0, y=0, registry=runtime.registry)
        runtime.apply(add_block, "mirror", x=300, y=0, registry=runtime.registry)
        runtime.apply(connect_blocks, "source", 2, 1, runtime.registry)
        return runtime

    def test_initial_push(self, wired):
        """a new connection delivers the target's current state once."""
        assert _state_of(wired, 2) == {"value": {"n": 0}, "updates": 1}
        assert wired.engine.instance(2).connections == {"source": 1}
        assert wired.engine.instance(1).observers == {(2, "source")}

    def test_changes_are_pushed(self, wired):
        """every change to the target reaches the observer."""
        _run(wired, 1, "increment")
        _run(wired, 1, "increment", 5)
        assert _state_of(wired, 2) == {"value": {"n": 6}, "updates": 3}
        assert wired.engine.render(2).plain == "⇐ 6"

    def test_disconnect_stops_updates(self, wired):
        """after disconnect the mirror keeps its last value."""
        wired.apply(disconnect, "source", 2)
        _run(wired, 1, "increment")
        assert _state_of(wired, 2)["updates"] == 1
        assert wired.engine.instance(1).observers == set()

    def test_deleting_target_unwires(self, wired):
        """deleting the observed block prunes the edge and the slot."""
        wired.apply(delete_block, 1)
        assert wired.state.current_page.connections == ()
        assert wired.engine.instance(2).connections == {}

    def test_undo_connect_unwires(self, wired):
        """undoing a connect removes the wiring as well."""
        wired.apply(undo)
        assert wired.state.current_page.connections == ()
        assert wired.engine.instance(2).connections == {}
        assert _state_of(wired, 2) == {"value": None, "updates": 0}


class TestFailureIsolation:
    """tests for errors staying inside their block."""

    def test_failing_action_marks_only_its_block(self, runtime):
        """a raising action leaves state alone and shows an error in place."""
        runtime.apply(add_block, "boom", x=0, y=0, registry=runtime.registry)
        runtime.apply(add_block, "counter", x=300, y=0, registry=runtime.registry)
        before = runtime.state

        _run(runtime, 1, "explode")
        assert runtime.state.pages == before.pages
        assert runtime.engine.error_for(1) == "kaboom"
        assert runtime.engine.render(1).plain == "error: kaboom"
        assert runtime.engine.error_for(2) is None

        _run(runtime, 2, "increment")
        assert _state_of(runtime, 2) == {"n": 1}

    def test_failing_view_is_contained(self, runtime, registry):
        """a raising view renders an error instead of propagating."""
        registry.register(Program(name="badview", initial_state={}, views={"main": lambda s: s["missing"]}))
        runtime.apply(add_block, "badview", x=0, y=0, registry=registry)
        assert runtime.engine.render(1).plain.startswith("error:")

    def test_lifted_actions_for_failed_block_are_empty(self, runtime):
        """blocks whose program never loaded expose no actions."""
        runtime.apply(add_block, "nope", x=0, y=0)
        assert runtime.engine.lifted_actions(1) == {}
