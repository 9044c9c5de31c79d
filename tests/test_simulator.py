import threading
import time

import numpy as np
import pytest

import simulator
from card_types import SimulationConfig, parse_cards
from deck import Deck
from simulator import (
    CancellationToken,
    DeckExhaustedError,
    InvalidConfigurationError,
    SimulationSession,
    SimulationState,
    estimated_duration,
    simulate,
    simulate_batch,
    validate_configuration,
)

SMALL = SimulationConfig(min_iterations=1, max_iterations=100000, batch_size=100)


def test_totals_add_up_to_requested_iterations():
    result = simulate(parse_cards("Qh Jh"), parse_cards("Th 9c 2d"), 1050, config=SMALL,
                      rng=np.random.default_rng(1))
    assert result.wins + result.ties + result.losses == result.total_simulations == 1050
    assert len(result.equity_history) == 11
    assert result.elapsed_time >= 0


def test_royal_flush_on_board_always_ties():
    result = simulate(parse_cards("2c 3d"), parse_cards("As Ks Qs Js Ts"), 500, config=SMALL,
                      rng=np.random.default_rng(2))
    assert result.ties == result.total_simulations == 500
    assert result.tie_percentage == pytest.approx(100.0)


def test_player_royal_flush_always_wins():
    result = simulate(parse_cards("As Ks"), parse_cards("Qs Js Ts 2c 3d"), 500, config=SMALL,
                      rng=np.random.default_rng(3))
    assert result.wins == 500
    assert result.losses == 0
    assert result.win_percentage == pytest.approx(100.0)


def test_progress_is_reported_per_batch_and_ends_at_one():
    progress = []
    simulate(parse_cards("As Kd"), [], 1050, config=SMALL, progress_callback=progress.append,
             rng=np.random.default_rng(4))
    assert len(progress) == 11
    assert progress == sorted(progress)
    assert progress[-1] == pytest.approx(1.0)
    assert all(p < 1.0 for p in progress[:-1])


def test_pre_cancelled_token_returns_no_result():
    token = CancellationToken()
    token.cancel()
    progress = []
    result = simulate(parse_cards("As Kd"), [], 1000, config=SMALL, cancellation_token=token,
                      progress_callback=progress.append)
    assert result is None
    assert progress == []


def test_cancelling_mid_run_discards_completed_batches():
    token = CancellationToken()
    progress = []

    def on_progress(fraction):
        progress.append(fraction)
        token.cancel()

    result = simulate(parse_cards("As Kd"), [], 1000, config=SMALL, cancellation_token=token,
                      progress_callback=on_progress)
    assert result is None
    assert progress == [pytest.approx(0.1)]


def test_same_seed_gives_same_result():
    first = simulate(parse_cards("8c 8d"), parse_cards("Ks 7h 2c"), 2000, config=SMALL,
                     rng=np.random.default_rng(99))
    second = simulate(parse_cards("8c 8d"), parse_cards("Ks 7h 2c"), 2000, config=SMALL,
                      rng=np.random.default_rng(99))
    assert (first.wins, first.ties, first.losses) == (second.wins, second.ties, second.losses)
    assert first.equity_history == second.equity_history


def test_worker_pool_matches_sequential_run():
    config = SimulationConfig(min_iterations=1, batch_size=200, workers=2)
    pooled = simulate(parse_cards("8c 8d"), parse_cards("Ks 7h 2c"), 1000, config=config,
                      rng=np.random.default_rng(7))
    sequential = simulate(parse_cards("8c 8d"), parse_cards("Ks 7h 2c"), 1000,
                          config=SimulationConfig(min_iterations=1, batch_size=200),
                          rng=np.random.default_rng(7))
    assert pooled.total_simulations == 1000
    assert (pooled.wins, pooled.ties, pooled.losses) == (sequential.wins, sequential.ties, sequential.losses)


@pytest.mark.parametrize("hand,expected", [
    ("As Ah", 0.852),
    ("As Ks", 0.670),
])
def test_preflop_equity_is_close_to_published_values(hand, expected):
    result = simulate(parse_cards(hand), [], 20000, config=SimulationConfig(),
                      rng=np.random.default_rng(2024))
    assert result.equity == pytest.approx(expected, abs=0.02)


@pytest.mark.parametrize("player,community,iterations", [
    ("As", "", 5000),
    ("As Ks Qs", "", 5000),
    ("As Ks", "2c 3c 4c 5c 6c 7c", 5000),
    ("As Ks", "", 4999),
    ("As Ks", "", 100001),
    ("As Ks", "As 2c 3c", 5000),
    ("As As", "", 5000),
])
def test_invalid_requests_are_rejected(player, community, iterations):
    player_cards = parse_cards(player)
    community_cards = parse_cards(community)
    assert validate_configuration(player_cards, community_cards, iterations) is not None
    with pytest.raises(InvalidConfigurationError):
        simulate(player_cards, community_cards, iterations)


def test_valid_request_passes_validation():
    assert validate_configuration(parse_cards("As Ks"), parse_cards("2c 3c 4c 5c 6c"), 5000) is None
    assert validate_configuration(parse_cards("As Ks"), [], 100000) is None


def test_validation_messages_name_the_problem():
    assert "2 cards" in validate_configuration(parse_cards("As"), [], 5000)
    assert "Duplicate card found: As" == validate_configuration(parse_cards("As Ks"), parse_cards("As"), 5000)


def test_iteration_bounds_come_from_config():
    config = SimulationConfig(min_iterations=10, max_iterations=20)
    with pytest.raises(InvalidConfigurationError):
        simulate(parse_cards("As Ks"), [], 30, config=config)
    assert simulate(parse_cards("As Ks"), [], 20, config=config).total_simulations == 20


def test_estimated_duration_is_monotonic():
    assert estimated_duration(50000) == pytest.approx(1.0)
    assert estimated_duration(10000, iterations_per_second=1000.0) == pytest.approx(10.0)
    durations = [estimated_duration(n) for n in (0, 5000, 20000, 100000, 200000)]
    assert durations == sorted(durations)


def test_simulate_batch_on_complete_board():
    wins, ties, losses = simulate_batch(parse_cards("As Ks"), parse_cards("Qs Js Ts 2c 3d"), 50, seed=1)
    assert (wins, ties, losses) == (50, 0, 0)


def test_short_draw_is_an_internal_error(monkeypatch):
    class ShortDeck(Deck):
        def draw_random_cards(self, count, rng=None):
            return []

        def copy(self):
            return self

    monkeypatch.setattr(simulator, "Deck", ShortDeck)
    with pytest.raises(DeckExhaustedError):
        simulate_batch(parse_cards("As Ks"), [], 1, seed=1)


def test_cancellation_token_is_set_once():
    token = CancellationToken()
    assert not token.is_cancelled
    token.cancel()
    token.cancel()
    assert token.is_cancelled


def test_session_defaults_and_fast_mode():
    session = SimulationSession()
    assert session.state == SimulationState.IDLE
    assert session.iterations == 20000
    session.fast_mode = True
    assert session.iterations == 8000
    session.fast_mode = False
    assert session.iterations == 20000


def test_session_clamps_iterations():
    session = SimulationSession()
    session.update_iterations(100)
    assert session.iterations == 5000
    session.update_iterations(10**6)
    assert session.iterations == 100000

    premium = SimulationSession(config=SimulationConfig.high_precision())
    premium.update_iterations(10**6)
    assert premium.iterations == 200000


def test_session_duration_text():
    assert SimulationSession(iterations=20000).estimated_duration_text() == "< 1 second"
    slow = SimulationConfig(iterations_per_second=10000.0)
    assert SimulationSession(config=slow, iterations=100000).estimated_duration_text() == "~10 seconds"
    slower = SimulationConfig(iterations_per_second=1000.0)
    assert SimulationSession(config=slower, iterations=100000).estimated_duration_text() == "~1.7 minutes"


def test_session_run_completes():
    session = SimulationSession(config=SMALL, iterations=300, rng=np.random.default_rng(5))
    result = session.run(parse_cards("As Ks"), parse_cards("Qs Js Ts"))
    assert session.state == SimulationState.COMPLETED
    assert session.result is result
    assert result.total_simulations == 300
    assert session.progress == 0.0

    session.reset()
    assert session.state == SimulationState.IDLE
    assert session.result is None


def test_session_run_with_invalid_cards_ends_in_error():
    session = SimulationSession(config=SMALL, iterations=300)
    assert session.run(parse_cards("As"), []) is None
    assert session.state == SimulationState.ERROR
    assert "2 cards" in session.error_message


def test_session_cancel_from_another_thread():
    session = SimulationSession(config=SMALL, iterations=100000, rng=np.random.default_rng(6))
    outcome = {}

    worker = threading.Thread(target=lambda: outcome.setdefault("result", session.run(parse_cards("As Ks"))))
    worker.start()
    deadline = time.monotonic() + 30
    while session.progress == 0.0 and worker.is_alive() and time.monotonic() < deadline:
        time.sleep(0.01)
    session.cancel()
    worker.join()

    assert outcome["result"] is None
    assert session.state == SimulationState.CANCELLED
    assert session.result is None


def test_cancel_during_only_batch_returns_no_result(monkeypatch):
    token = CancellationToken()
    progress = []
    run_batch = simulator.simulate_batch

    def cancelling_batch(*args, **kwargs):
        tally = run_batch(*args, **kwargs)
        token.cancel()
        return tally

    monkeypatch.setattr(simulator, "simulate_batch", cancelling_batch)
    result = simulate(parse_cards("As Kd"), [], 500,
                      config=SimulationConfig(min_iterations=1, batch_size=1000),
                      cancellation_token=token, progress_callback=progress.append,
                      rng=np.random.default_rng(8))
    assert result is None
    assert progress == []


def test_cancel_during_last_batch_returns_no_result(monkeypatch):
    token = CancellationToken()
    progress = []
    calls = []
    run_batch = simulator.simulate_batch

    def cancelling_last_batch(*args, **kwargs):
        calls.append(1)
        tally = run_batch(*args, **kwargs)
        if len(calls) == 3:
            token.cancel()
        return tally

    monkeypatch.setattr(simulator, "simulate_batch", cancelling_last_batch)
    result = simulate(parse_cards("As Kd"), [], 300, config=SMALL, cancellation_token=token,
                      progress_callback=progress.append, rng=np.random.default_rng(9))
    assert result is None
    assert len(calls) == 3
    assert progress == [pytest.approx(1 / 3), pytest.approx(2 / 3)]


def test_cancelling_pooled_run_never_reports_completion():
    token = CancellationToken()
    progress = []

    def on_progress(fraction):
        progress.append(fraction)
        token.cancel()

    config = SimulationConfig(min_iterations=1, batch_size=100, workers=2)
    result = simulate(parse_cards("As Kd"), [], 2000, config=config, cancellation_token=token,
                      progress_callback=on_progress, rng=np.random.default_rng(10))
    assert result is None
    assert progress
    assert max(progress) < 1.0


def test_session_cancel_during_final_batch_ends_cancelled(monkeypatch):
    session = SimulationSession(config=SMALL, iterations=100, rng=np.random.default_rng(11))
    run_batch = simulator.simulate_batch

    def cancelling_batch(*args, **kwargs):
        tally = run_batch(*args, **kwargs)
        session.cancel()
        return tally

    monkeypatch.setattr(simulator, "simulate_batch", cancelling_batch)
    assert session.run(parse_cards("As Ks")) is None
    assert session.state == SimulationState.CANCELLED
    assert session.result is None
