import threading
import time
from decimal import Decimal
from unittest.mock import MagicMock

import pytest

from controllers.swap_controller import SwapController
from controllers.trade_controller import TradeController
from models.trade_memory import CycleOutcome
from orchestrators.trade_orchestrator import CycleGuard, TradeOrchestrator, build_runtime


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


class CountingController:
    """Controlador mínimo: cuenta ciclos y devuelve un resultado fijo."""

    def __init__(self, swap_attempted: bool = True) -> None:
        self.swap_attempted = swap_attempted
        self.calls = 0

    def run_cycle(self, memory):
        self.calls += 1
        return CycleOutcome(swap_attempted=self.swap_attempted)


# ---------- barrera ----------
def test_guard_admits_one_holder_at_a_time():
    guard = CycleGuard(cooldown_secs=0)
    assert guard.try_acquire()
    assert guard.in_flight
    assert not guard.try_acquire()
    guard.release()
    assert not guard.in_flight
    assert guard.try_acquire()


def test_guard_cooldown_only_armed_by_swap_attempts():
    clock = FakeClock()
    guard = CycleGuard(cooldown_secs=15, clock=clock)

    guard.try_acquire()
    guard.release(swap_attempted=False)
    assert guard.cooldown_remaining() == 0

    guard.try_acquire()
    guard.release(swap_attempted=True)
    clock.now += 5
    assert guard.cooldown_remaining() == pytest.approx(10)
    clock.now += 10
    assert guard.cooldown_remaining() == 0


def test_guard_last_trade_time_never_moves_backwards():
    clock = FakeClock(500)
    guard = CycleGuard(cooldown_secs=1, clock=clock)
    guard.try_acquire()
    guard.release(swap_attempted=True)
    clock.now = 400
    guard.try_acquire()
    guard.release(swap_attempted=True)
    assert guard.last_trade_at == 500


# ---------- single-flight ----------
def test_tick_during_swap_is_dropped(wallet, quotes, trend, make_config):
    started = threading.Event()
    release = threading.Event()
    real = SwapController(wallet, quotes, clock=lambda: 1_700_000_000)

    def slow_swap(request):
        started.set()
        assert release.wait(5)
        return real.execute_swap(request)

    executor = MagicMock()
    executor.execute_swap.side_effect = slow_swap
    controller = TradeController(wallet, quotes, executor, trend, make_config())
    orch = TradeOrchestrator(controller, CycleGuard(cooldown_secs=0), interval_secs=60)

    assert orch.trigger()
    assert started.wait(5)
    assert not orch.trigger()
    assert not orch.trigger()
    release.set()
    orch.join(5)

    assert executor.execute_swap.call_count == 1
    assert orch.ticks_dropped == 2
    assert not orch.guard.in_flight
    assert orch.last_outcome.ok


# ---------- enfriamiento ----------
def test_no_second_swap_within_cooldown(wallet, quotes, trend, make_config, chain):
    clock = FakeClock()
    executor = MagicMock(wraps=SwapController(wallet, quotes, clock=lambda: 1_700_000_000))
    controller = TradeController(wallet, quotes, executor, trend, make_config(min_profit=Decimal("0")))
    orch = TradeOrchestrator(controller, CycleGuard(cooldown_secs=15, clock=clock))

    assert orch.run_once().ok
    # vuelve a haber nativo vendible: sigue siendo elegible
    chain.set_balances(native=Decimal("10"), token=Decimal("0"))

    clock.now += 14.9
    assert orch.run_once() is None
    assert executor.execute_swap.call_count == 1

    clock.now += 0.2
    assert orch.run_once().ok
    assert executor.execute_swap.call_count == 2


def test_failed_swap_also_arms_cooldown():
    clock = FakeClock()
    controller = MagicMock()
    controller.run_cycle.return_value = CycleOutcome(swap_attempted=True, error="reverted")
    orch = TradeOrchestrator(controller, CycleGuard(cooldown_secs=15, clock=clock))

    assert orch.trigger(wait=True)
    clock.now += 1
    assert not orch.trigger(wait=True)
    assert controller.run_cycle.call_count == 1


def test_hold_cycles_do_not_arm_cooldown():
    clock = FakeClock()
    controller = CountingController(swap_attempted=False)
    orch = TradeOrchestrator(controller, CycleGuard(cooldown_secs=15, clock=clock))

    assert orch.trigger(wait=True)
    assert orch.trigger(wait=True)
    assert controller.calls == 2


def test_guard_is_released_when_cycle_raises():
    controller = MagicMock()
    controller.run_cycle.side_effect = RuntimeError("boom")
    orch = TradeOrchestrator(controller, CycleGuard(cooldown_secs=0))

    assert orch.trigger(wait=True)
    assert not orch.guard.in_flight
    assert orch.trigger(wait=True)


# ---------- bucle ----------
def test_loop_runs_cycles_until_stopped():
    controller = CountingController(swap_attempted=False)
    orch = TradeOrchestrator(controller, CycleGuard(cooldown_secs=0), interval_secs=0.01)

    orch.start()
    deadline = time.time() + 5
    while controller.calls < 3 and time.time() < deadline:
        time.sleep(0.01)
    orch.stop()
    orch.join(5)

    assert controller.calls >= 3
    assert not orch.running


def test_memory_is_shared_across_cycles():
    controller = MagicMock()
    controller.run_cycle.return_value = CycleOutcome()
    orch = TradeOrchestrator(controller, CycleGuard(cooldown_secs=0))

    orch.trigger(wait=True)
    orch.trigger(wait=True)

    first, second = (c.args[0] for c in controller.run_cycle.call_args_list)
    assert first is second is orch.memory


# ---------- montaje ----------
def test_build_runtime_wires_components(chain, make_config):
    config = make_config(poll_interval_secs=7, cooldown_secs=30, price_history_size=10,
                         ma_short_period=3, ma_long_period=8)

    runtime = build_runtime(config, chain=chain)

    assert runtime.wallet.pair.token.symbol == "USDC"
    assert runtime.wallet.pair.native.is_native
    assert runtime.orchestrator.interval_secs == 7
    assert runtime.orchestrator.guard.cooldown_secs == 30
    assert runtime.controller.trend.capacity == 10
    assert runtime.controller.trend.short_period == 3
    assert runtime.controller.executor is runtime.executor
    assert not runtime.notifier.enabled
