"""Tests for the field subscription store."""
import asyncio

from client.field_store import FieldSubscriptionStore


class ManualScheduler:
    """Records scheduled callbacks; `run()` fires the ones still live."""

    class Handle:
        def __init__(self, callback):
            self.callback = callback
            self.cancelled = False

        def cancel(self):
            self.cancelled = True

    def __init__(self):
        self.scheduled: list[tuple[float, "ManualScheduler.Handle"]] = []

    def __call__(self, delay, callback):
        handle = self.Handle(callback)
        self.scheduled.append((delay, handle))
        return handle

    def run(self):
        due, self.scheduled = self.scheduled, []
        for _, handle in due:
            if not handle.cancelled:
                handle.callback()


def _store(scheduler=None, frame_interval=0.016):
    scheduler = scheduler or ManualScheduler()
    return FieldSubscriptionStore(frame_interval=frame_interval, scheduler=scheduler), scheduler


class TestUpdates:
    def test_last_writer_wins(self):
        store, _ = _store()
        store.update("Company Profiler", {"name": "Ac"}, 1, 3)
        store.update("Company Profiler", {"name": "Acme", "tagline": "x"}, 2, 9)
        data = store.get("Company Profiler")
        assert data.fields == {"name": "Acme", "tagline": "x"}
        assert data.field_count == 2
        assert data.token_count == 9

    def test_stages_are_independent(self):
        store, _ = _store()
        store.update("A", {"a": 1}, 1, 1)
        store.update("B", {"b": 2}, 1, 1)
        assert set(store.snapshot()) == {"A", "B"}
        assert store.get("C") is None

    def test_snapshot_is_a_copy(self):
        store, _ = _store()
        store.update("A", {"a": 1}, 1, 1)
        snapshot = store.snapshot()
        store.update("B", {}, 0, 1)
        assert set(snapshot) == {"A"}


class TestNotifications:
    def test_updates_within_one_frame_coalesce(self):
        store, scheduler = _store()
        calls = []
        store.subscribe(lambda: calls.append(store.get("A").token_count))

        for i in range(20):
            store.update("A", {"n": i}, 1, i)
        assert calls == []
        assert len(scheduler.scheduled) == 1
        assert scheduler.scheduled[0][0] == 0.016

        scheduler.run()
        assert calls == [19]

    def test_next_frame_schedules_again(self):
        store, scheduler = _store()
        calls = []
        store.subscribe(lambda: calls.append(1))
        store.update("A", {}, 0, 1)
        scheduler.run()
        store.update("A", {}, 0, 2)
        scheduler.run()
        assert calls == [1, 1]

    def test_clear_notifies_immediately_and_cancels_pending(self):
        store, scheduler = _store()
        calls = []
        store.subscribe(lambda: calls.append(store.snapshot()))
        store.update("A", {"a": 1}, 1, 1)
        store.clear()
        assert calls == [{}]
        scheduler.run()
        assert calls == [{}]

    def test_unsubscribe(self):
        store, scheduler = _store()
        calls = []
        unsubscribe = store.subscribe(lambda: calls.append(1))
        unsubscribe()
        unsubscribe()
        store.update("A", {}, 0, 1)
        scheduler.run()
        assert calls == []

    def test_failing_listener_does_not_block_others(self):
        store, scheduler = _store()
        calls = []

        def broken():
            raise ValueError("render failed")

        store.subscribe(broken)
        store.subscribe(lambda: calls.append(1))
        store.update("A", {}, 0, 1)
        scheduler.run()
        assert calls == [1]


class TestDefaultScheduler:
    def test_event_loop_frames(self):
        async def scenario():
            store = FieldSubscriptionStore(frame_interval=0.01)
            calls = []
            store.subscribe(lambda: calls.append(1))
            for i in range(50):
                store.update("A", {"n": i}, 1, i)
            await asyncio.sleep(0.05)
            return calls

        assert asyncio.run(scenario()) == [1]

    def test_without_loop_notifies_synchronously(self):
        store = FieldSubscriptionStore()
        calls = []
        store.subscribe(lambda: calls.append(1))
        store.update("A", {}, 0, 1)
        store.update("A", {}, 0, 2)
        assert calls == [1, 1]

    def test_isolated_instances(self):
        first, second = FieldSubscriptionStore(), FieldSubscriptionStore()
        first.update("A", {"a": 1}, 1, 1)
        assert second.get("A") is None
