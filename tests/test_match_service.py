import asyncio
import random
import time

import pytest

from trailarena.config.settings import MatchSettings
from trailarena.models.entities import Direction, MatchPhase
from trailarena.models.errors import AdmissionError, StaleReference
from trailarena.models.messages import JoinRequest, Leave, SetHeading
from trailarena.services.match_service import MatchController, MatchRegistry


async def _wait_for(predicate, timeout=2.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not reached in time")
        await asyncio.sleep(0.005)


def _controller(settings, messages=None, disposed=None):
    async def broadcast(message):
        if messages is not None:
            messages.append(message)

    async def on_disposed(controller):
        if disposed is not None:
            disposed.append(controller.match_id)

    return MatchController(
        "match_1",
        settings,
        broadcast=broadcast,
        on_disposed=on_disposed,
        rng=random.Random(5),
    )


@pytest.mark.parametrize(
    "match_id, code",
    [(None, "missing_match_id"), ("", "missing_match_id"), ("match_2", "match_id_mismatch")],
)
def test_join_rejected_without_matching_token(settings, match_id, code):
    controller = _controller(settings)

    with pytest.raises(AdmissionError) as excinfo:
        controller.join(JoinRequest(match_id=match_id, name="Ann"))

    assert excinfo.value.code == code
    assert controller.game.population == 0
    assert controller.phase == MatchPhase.FILLING


def test_first_join_starts_countdown_once(fast_settings):
    async def scenario():
        controller = _controller(fast_settings)
        controller.join(JoinRequest("match_1", "Ann"), "s1")
        countdown = controller._countdown
        controller.join(JoinRequest("match_1", "Bob"), "s2")

        assert controller.phase == MatchPhase.COUNTDOWN
        assert controller._countdown is countdown
        await controller.dispose()

    asyncio.run(scenario())


def test_join_rejected_when_full_or_running():
    settings = MatchSettings(max_players=1, join_window=10)

    async def scenario():
        controller = _controller(settings)
        controller.join(JoinRequest("match_1", "Ann"), "s1")
        with pytest.raises(AdmissionError) as full:
            controller.join(JoinRequest("match_1", "Bob"), "s2")
        assert full.value.code == "match_full"

        await controller.start()
        with pytest.raises(AdmissionError) as started:
            controller.join(JoinRequest("match_1", "Cid"), "s3")
        assert started.value.code == "match_started"
        await controller.dispose()

    asyncio.run(scenario())


def test_start_fills_to_capacity_before_first_tick(settings):
    seen = []

    async def scenario():
        controller = _controller(settings, messages=seen)
        controller.join(JoinRequest("match_1", "Ann"), "s1")
        await controller.start()
        seen.append(("after_start", controller.game.tick_count))
        await controller.dispose()
        return controller

    controller = asyncio.run(scenario())

    started = seen[0]
    assert started["type"] == "matchStarted"
    assert started["playersCount"] == 20
    assert started["playArea"] == {"w": 1200, "h": 800}
    assert seen[1] == ("after_start", 0)


def test_full_lifecycle_ends_and_disposes():
    settings = MatchSettings(
        max_players=1, tick_rate=100, join_window=0.01, end_grace_delay=0.01
    )
    messages, disposed = [], []

    async def scenario():
        controller = _controller(settings, messages, disposed)
        controller.join(JoinRequest("match_1", "Solo"), "s1")
        await _wait_for(lambda: controller.phase == MatchPhase.DISPOSED)
        await controller.dispose()
        return controller

    controller = asyncio.run(scenario())

    assert [m["type"] for m in messages] == ["matchStarted", "state"]
    assert messages[1]["ended"] is True
    assert messages[1]["winner"] == "s1"
    assert disposed == ["match_1"]
    assert controller.game.entities == {}


def test_set_heading_is_last_write_wins_and_ignored_when_dead(settings):
    controller = _controller(settings)
    entity = controller.game.add_human("s1", "Ann")

    controller.handle("s1", SetHeading(Direction.LEFT))
    controller.handle("s1", SetHeading(Direction.DOWN))
    assert entity.desired_heading == Direction.DOWN

    controller.handle("s1", Leave())
    assert not entity.alive and entity.disconnected
    assert controller.handle("s1", SetHeading(Direction.UP)) is False
    assert entity.desired_heading == Direction.DOWN


def test_unknown_session_is_stale(settings):
    controller = _controller(settings)

    with pytest.raises(StaleReference):
        controller.set_heading("ghost", Direction.UP)
    with pytest.raises(StaleReference):
        controller.leave("ghost")


def test_disconnect_mid_match_marks_dead_immediately():
    # One human plus one bot: the departure leaves a single survivor
    settings = MatchSettings(
        max_players=2, tick_rate=100, join_window=0.01, end_grace_delay=0.01
    )
    messages = []

    async def scenario():
        controller = _controller(settings, messages)
        controller.join(JoinRequest("match_1", "Ann"), "s1")
        await _wait_for(lambda: controller.game.tick_count > 0)

        entity = controller.leave("s1")
        assert not entity.alive
        assert "s1" in controller.game.entities

        await _wait_for(lambda: controller.phase in (MatchPhase.ENDED, MatchPhase.DISPOSED))
        await controller.dispose()

    asyncio.run(scenario())

    final = [m for m in messages if m["type"] == "state" and m["ended"]]
    assert len(final) == 1
    assert final[0]["players"]["s1"]["alive"] is False
    assert final[0]["players"]["s1"]["disconnected"] is True
    assert final[0]["players"]["s1"]["trail"]
    assert all(not m["ended"] for m in messages if m["type"] == "state" and m is not final[0])


def test_dispose_is_idempotent_and_stales_the_match(fast_settings):
    disposed = []

    async def scenario():
        controller = _controller(fast_settings, disposed=disposed)
        controller.join(JoinRequest("match_1", "Ann"), "s1")
        await controller.dispose()
        await controller.dispose()
        await controller.stop()
        return controller

    controller = asyncio.run(scenario())

    assert disposed == ["match_1"]
    assert controller.phase == MatchPhase.DISPOSED
    with pytest.raises(StaleReference):
        controller.join(JoinRequest("match_1", "Bob"), "s2")
    with pytest.raises(StaleReference):
        controller.set_heading("s1", Direction.UP)


def test_stop_halts_ticking(fast_settings):
    async def scenario():
        controller = _controller(fast_settings)
        controller.join(JoinRequest("match_1", "Ann"), "s1")
        await _wait_for(lambda: controller.game.tick_count > 0)
        await controller.stop()
        ticks = controller.game.tick_count
        await asyncio.sleep(0.05)
        assert controller.game.tick_count == ticks
        await controller.dispose()

    asyncio.run(scenario())


def test_idle_match_is_disposed(fast_settings):
    async def scenario():
        registry = MatchRegistry(fast_settings)
        controller = registry.create("match_idle")
        controller.arm_idle_timeout()
        await _wait_for(lambda: controller.phase == MatchPhase.DISPOSED)
        return registry

    registry = asyncio.run(scenario())

    assert "match_idle" not in registry


def test_failing_tick_only_disposes_its_own_match(fast_settings):
    async def scenario():
        registry = MatchRegistry(fast_settings, rng=random.Random(9))
        broken = registry.create("broken")
        healthy = registry.create("healthy")
        for controller in (broken, healthy):
            controller.join(JoinRequest(controller.match_id, "Ann"), "s1")

        def explode():
            raise RuntimeError("boom")

        broken.game.tick = explode
        await _wait_for(lambda: broken.phase == MatchPhase.DISPOSED)

        assert "broken" not in registry
        assert healthy.phase in (MatchPhase.COUNTDOWN, MatchPhase.RUNNING, MatchPhase.ENDED)
        await registry.dispose_all()
        return registry

    registry = asyncio.run(scenario())

    assert len(registry) == 0


def test_registry_lookup(settings):
    registry = MatchRegistry(settings)
    controller = registry.create()

    assert registry.get(controller.match_id) is controller
    assert controller.match_id.startswith("match_")
    with pytest.raises(StaleReference):
        registry.get("nope")
    with pytest.raises(ValueError):
        registry.create(controller.match_id)
    assert registry.stats()[0]["phase"] == "filling"


def test_registry_remove_disposes_and_forgets(settings):
    disposed = []

    async def on_disposed(controller):
        disposed.append(controller.match_id)

    async def scenario():
        registry = MatchRegistry(settings, on_disposed=on_disposed)
        controller = registry.create("match_gone")
        registry.create("match_kept")
        await registry.remove("match_gone")
        with pytest.raises(StaleReference):
            await registry.remove("match_gone")
        return registry, controller

    registry, controller = asyncio.run(scenario())

    assert controller.phase == MatchPhase.DISPOSED
    assert disposed == ["match_gone"]
    assert "match_gone" not in registry
    assert [c.match_id for c in registry] == ["match_kept"]
    with pytest.raises(StaleReference):
        registry.get("match_gone")


def test_slow_ticks_are_dropped_not_replayed(fast_settings):
    # 10 ms period, every tick takes 25 ms
    slow = 0.025
    starts = []

    async def scenario():
        controller = _controller(fast_settings)
        controller.join(JoinRequest("match_1", "Ann"), "s1")
        real_tick = controller.game.tick

        def slow_tick():
            starts.append(time.perf_counter())
            time.sleep(slow)
            return real_tick()

        controller.game.tick = slow_tick
        await _wait_for(lambda: len(starts) >= 6)
        await controller.stop()
        await controller.dispose()
        return controller

    controller = asyncio.run(scenario())

    gaps = [later - earlier for earlier, later in zip(starts, starts[1:])]
    assert min(gaps) >= slow
    # Every overrun skips at least one slot instead of queueing it
    assert controller.dropped_ticks >= len(starts) - 1
