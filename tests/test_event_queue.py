"""
Tests for chronological event dispatch on the simpy clock.
"""

import pytest

from propagation_simulator.consensus import ProcessResult
from propagation_simulator.errors import CollaboratorError, SimulationError
from propagation_simulator.events import FunctionEvent, NodeEvent, SimulationEvent
from propagation_simulator.packet import AddressPacket, NewBlockSignal
from propagation_simulator.settings import Settings
from propagation_simulator.simulator import SimulationContext


def signal_at(context, address, timestamp):
    return NodeEvent(NewBlockSignal.create(context, to=address), timestamp)


class TestEvents:
    """Test the event types themselves."""

    def test_event_kinds_are_closed(self):
        with pytest.raises(TypeError):
            class TimerEvent(SimulationEvent):
                pass

    def test_node_event_arrives_after_delay(self, context):
        first, second = context.nodes.create(), context.nodes.create()
        packet = AddressPacket.create(context, to=second, sender=first, addresses=[first])
        event = NodeEvent(packet, 40)
        assert event.timestamp == pytest.approx(40 + packet.delay)
        assert event.sent_at == 40

    def test_function_event_defaults_to_empty_state(self):
        event = FunctionEvent(lambda state: None, timestamp=5)
        assert event.context == {}
        assert event.timestamp == 5


class TestDispatchOrder:
    """Test that events run in timestamp order."""

    def test_out_of_order_events_dispatch_chronologically(self, context):
        address = context.nodes.create()
        for timestamp in (50, 10, 30):
            context.queue.enqueue(signal_at(context, address, timestamp))
        context.env.run()
        assert [now for now, _ in context.protocol.seen] == [10, 30, 50]
        assert [event.timestamp for event in context.queue.dispatched] == [10, 30, 50]
        assert len(context.queue) == 0

    def test_equal_timestamps_keep_enqueue_order(self, context):
        order = []
        for name in ("first", "second", "third"):
            context.queue.enqueue(FunctionEvent(lambda state: order.append(state["name"]), {"name": name}, 20))
        context.env.run()
        assert order == ["first", "second", "third"]

    def test_past_event_runs_at_current_time(self, context):
        address = context.nodes.create()
        context.queue.enqueue(signal_at(context, address, 50))
        context.env.run()
        context.queue.enqueue(signal_at(context, address, 20))
        context.env.run()
        assert [now for now, _ in context.protocol.seen] == [50, 50]
        assert context.now == 50

    def test_self_rescheduling_function(self, context):
        times = []

        def tick(state):
            times.append(context.now)
            if state["left"] > 1:
                context.queue.enqueue(FunctionEvent(tick, {"left": state["left"] - 1}, context.now + 100))

        context.queue.enqueue(FunctionEvent(tick, {"left": 3}, 0))
        context.env.run()
        assert times == [0, 100, 200]

    def test_enqueue_during_drain_joins_the_running_drain(self, context):
        results = []

        def reenter(state):
            results.append((context.queue.is_draining, context.queue.dequeue()))

        context.queue.enqueue(FunctionEvent(reenter, None, 5))
        context.env.run()
        assert results == [(True, None)]
        assert not context.queue.is_draining

    def test_zero_time_budget_still_drains(self, context):
        hurried = SimulationContext(Settings(max_drain_seconds=0), type(context.protocol))
        hurried.running = True
        times = []
        for timestamp in (5, 5, 10, 15):
            hurried.queue.enqueue(FunctionEvent(lambda state: times.append(hurried.now), None, timestamp))
        for _ in range(1000):
            if not hurried.queue.pending:
                break
            hurried.env.step()
        assert times == [5, 5, 10, 15]
        assert len(hurried.queue.dispatched) == 4

    def test_time_budget_yield_keeps_order(self, context):
        hurried = SimulationContext(Settings(max_drain_seconds=0), type(context.protocol))
        hurried.running = True
        address = hurried.nodes.create()
        for timestamp in (30, 10, 20):
            hurried.queue.enqueue(signal_at(hurried, address, timestamp))
        hurried.env.run()
        assert [now for now, _ in hurried.protocol.seen] == [10, 20, 30]
        assert not hurried.queue.is_draining

    def test_pending_is_sorted(self, context):
        context.running = False
        for timestamp in (30, 10, 20):
            context.queue.enqueue(FunctionEvent(lambda state: None, None, timestamp))
        assert [event.timestamp for event in context.queue.pending] == [10, 20, 30]


class TestRunControl:
    """Test pausing and resuming the queue."""

    def test_nothing_drains_while_stopped(self, context):
        context.running = False
        context.queue.enqueue(FunctionEvent(lambda state: None, None, 10))
        assert context.queue.dequeue() is None
        context.env.run()
        assert context.queue.dispatched == []

    def test_pause_and_resume(self, context):
        ran = []

        def pause(state):
            context.running = False

        context.queue.enqueue(FunctionEvent(pause, None, 10))
        context.queue.enqueue(FunctionEvent(lambda state: ran.append(context.now), None, 20))
        context.env.run()
        assert ran == []
        assert len(context.queue) == 1

        context.running = True
        context.queue.dequeue()
        context.env.run()
        assert ran == [20]


class TestFailures:
    """Test that collaborator faults abort the run."""

    def test_protocol_error_becomes_collaborator_error(self, context):
        address = context.nodes.create()

        def broken(packet, node):
            raise ValueError("boom")

        context.protocol.process = broken
        context.queue.enqueue(signal_at(context, address, 10))
        with pytest.raises(CollaboratorError) as excinfo:
            context.env.run()
        assert excinfo.value.address == address
        assert excinfo.value.packet_summary == "a new block signal"
        assert "boom" in str(excinfo.value)
        assert not context.running
        assert not context.queue.is_draining
        assert context.telemetry.of_type("error")

    def test_delivery_to_unknown_node(self, context):
        context.queue.enqueue(NodeEvent(NewBlockSignal(to=99, sender=99), 10))
        with pytest.raises(CollaboratorError) as excinfo:
            context.env.run()
        assert excinfo.value.address == 99
        assert excinfo.value.packet_summary == "a new block signal"
        assert not context.running

    def test_function_error_stops_the_run(self, context):
        def broken(state):
            raise RuntimeError("broken function")

        context.queue.enqueue(FunctionEvent(broken, None, 10))
        context.queue.enqueue(FunctionEvent(lambda state: None, None, 20))
        with pytest.raises(SimulationError):
            context.env.run()
        assert not context.running
        assert len(context.queue) == 1


class TestAsyncProtocol:
    """Test protocols that take simulated time to process a packet."""

    def test_generator_result_delays_the_timeline(self, context):
        address = context.nodes.create()
        started = []

        def slow(packet, node):
            started.append(context.now)
            yield context.env.timeout(5)
            return ProcessResult(node, [])

        context.protocol.process = slow
        context.queue.enqueue(signal_at(context, address, 10))
        context.queue.enqueue(signal_at(context, address, 12))
        context.env.run()
        assert started == [10, 15]


class TestAnnouncements:
    """Test telemetry emitted for packets on the network."""

    def test_network_packet_is_announced(self, context):
        first, second = context.nodes.create(), context.nodes.create()
        packet = AddressPacket.create(context, to=second, sender=first, addresses=[first])
        context.queue.enqueue(NodeEvent(packet, 0))
        in_flight = context.telemetry.of_type("packet-in-flight")
        assert len(in_flight) == 1
        assert in_flight[0]["kind"] == "AddressPacket"
        assert in_flight[0]["to"] == second

    def test_internal_signal_is_not_announced(self, context):
        address = context.nodes.create()
        context.queue.enqueue(signal_at(context, address, 0))
        assert context.telemetry.of_type("packet-in-flight") == []
