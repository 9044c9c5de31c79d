"""
Monte Carlo equity simulator for heads-up Texas Hold'em.

The player's two cards and any known community cards are fixed; every
iteration deals the unknown opponent two random cards, completes the board
and compares the two best hands. Iterations run in batches, between which the
cancellation token is polled and progress is reported.
"""

import logging
import threading
import time
from concurrent.futures import FIRST_COMPLETED, ProcessPoolExecutor, wait
from enum import Enum
from typing import Callable, List, Optional, Sequence, Tuple
import numpy as np

from card_types import (
    Card,
    DEFAULT_MAX_ITERATIONS,
    DEFAULT_MIN_ITERATIONS,
    SimulationConfig,
    SimulationResult,
    cards_to_array,
)
from deck import Deck
from hand_evaluator import showdown

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[float], None]

# (wins, ties, losses)
BatchTally = Tuple[int, int, int]

DEFAULT_ITERATIONS = 20000
FAST_MODE_ITERATIONS = 8000


class InvalidConfigurationError(ValueError):
    """The requested hand, board or iteration count cannot be simulated."""


class DeckExhaustedError(RuntimeError):
    """The deck ran out of cards while completing an iteration."""


class CancellationToken:
    """Set-once flag shared between a running simulation and whoever may stop it."""

    def __init__(self):
        self._event = threading.Event()

    @property
    def is_cancelled(self) -> bool:
        return self._event.is_set()

    def cancel(self):
        self._event.set()


def validate_configuration(
    player_cards: Sequence[Card],
    community_cards: Sequence[Card],
    iterations: int,
    min_iterations: int = DEFAULT_MIN_ITERATIONS,
    max_iterations: int = DEFAULT_MAX_ITERATIONS
) -> Optional[str]:
    """
    Check a simulation request without running it.

    Returns:
        None if the request is valid, otherwise a description of the problem
    """
    if len(player_cards) != 2:
        return f"Player must have exactly 2 cards, got {len(player_cards)}"

    if len(community_cards) > 5:
        return f"At most 5 community cards allowed, got {len(community_cards)}"

    if iterations < min_iterations:
        return f"Minimum {min_iterations:,} iterations required, got {iterations:,}"

    if iterations > max_iterations:
        return f"Maximum {max_iterations:,} iterations allowed, got {iterations:,}"

    all_cards = list(player_cards) + list(community_cards)
    if len(set(all_cards)) != len(all_cards):
        seen = set()
        for card in all_cards:
            if card in seen:
                return f"Duplicate card found: {card}"
            seen.add(card)

    return None


def estimated_duration(iterations: int, iterations_per_second: float = 50000.0) -> float:
    """Rough run time in seconds, assuming a constant throughput."""
    return max(iterations, 0) / iterations_per_second


def simulate_batch(
    player_cards: Sequence[Card],
    community_cards: Sequence[Card],
    iterations: int,
    seed: int
) -> BatchTally:
    """
    Run one batch of iterations against a random opponent.

    Module level so that it can be shipped to worker processes.

    Args:
        player_cards: The player's 2 cards
        community_cards: Known community cards (0-5)
        iterations: Number of iterations in this batch
        seed: Seed for this batch's random generator

    Returns:
        (wins, ties, losses) for the batch
    """
    deck = Deck(np.random.default_rng(seed))
    deck.mark_as_used(list(player_cards) + list(community_cards))

    player_cards = list(player_cards)
    community_cards = list(community_cards)
    cards_needed = 5 - len(community_cards)

    wins = 0
    ties = 0
    losses = 0

    for _ in range(iterations):
        working_deck = deck.copy()

        opponent_cards = working_deck.draw_random_cards(2)
        board_cards = working_deck.draw_random_cards(cards_needed)
        if len(opponent_cards) != 2 or len(board_cards) != cards_needed:
            raise DeckExhaustedError(
                f"Deck exhausted: {working_deck.remaining_count} cards left after drawing "
                f"{len(opponent_cards)} opponent and {len(board_cards)} board cards"
            )

        full_board = community_cards + board_cards
        outcome = showdown(
            cards_to_array(player_cards + full_board),
            cards_to_array(opponent_cards + full_board)
        )

        if outcome > 0:
            wins += 1
        elif outcome == 0:
            ties += 1
        else:
            losses += 1

    return wins, ties, losses


def _batch_sizes(iterations: int, batch_size: int) -> List[int]:
    total_batches = (iterations + batch_size - 1) // batch_size
    return [min(batch_size, iterations - index * batch_size) for index in range(total_batches)]


class _Tally:
    """Running totals, only ever touched by the aggregating thread."""

    def __init__(self, total_batches: int, progress_callback: Optional[ProgressCallback]):
        self.total_batches = total_batches
        self.progress_callback = progress_callback
        self.batches_done = 0
        self.wins = 0
        self.ties = 0
        self.losses = 0
        self.equity_history = []

    def add(self, batch: BatchTally):
        wins, ties, losses = batch
        self.wins += wins
        self.ties += ties
        self.losses += losses
        self.batches_done += 1

        total = self.wins + self.ties + self.losses
        self.equity_history.append((self.wins + 0.5 * self.ties) / total if total else 0.0)

        if self.progress_callback is not None:
            self.progress_callback(self.batches_done / self.total_batches)


def _is_cancelled(cancellation_token: Optional[CancellationToken]) -> bool:
    return cancellation_token is not None and cancellation_token.is_cancelled


def _run_sequential(player_cards, community_cards, sizes, seeds, tally, cancellation_token) -> bool:
    for size, seed in zip(sizes, seeds):
        if _is_cancelled(cancellation_token):
            return False
        batch = simulate_batch(player_cards, community_cards, size, seed)
        # A cancel that arrived while the batch ran still discards it
        if _is_cancelled(cancellation_token):
            return False
        tally.add(batch)
    return True


def _run_parallel(player_cards, community_cards, sizes, seeds, tally, cancellation_token, workers) -> bool:
    pending_batches = list(zip(sizes, seeds))
    pending_batches.reverse()

    pool = ProcessPoolExecutor(max_workers=workers)
    completed = False
    try:
        active = set()

        def submit_more():
            while pending_batches and len(active) < workers:
                size, seed = pending_batches.pop()
                active.add(pool.submit(simulate_batch, player_cards, community_cards, size, seed))

        submit_more()
        while active:
            if _is_cancelled(cancellation_token):
                return False

            done, _ = wait(active, return_when=FIRST_COMPLETED)
            active.difference_update(done)

            if _is_cancelled(cancellation_token):
                return False

            for future in done:
                tally.add(future.result())
            submit_more()

        completed = True
        return True
    finally:
        # On cancellation, batches still running in workers are abandoned
        pool.shutdown(wait=completed, cancel_futures=not completed)


def simulate(
    player_cards: Sequence[Card],
    community_cards: Sequence[Card],
    iterations: int,
    config: Optional[SimulationConfig] = None,
    cancellation_token: Optional[CancellationToken] = None,
    progress_callback: Optional[ProgressCallback] = None,
    rng: Optional[np.random.Generator] = None
) -> Optional[SimulationResult]:
    """
    Estimate how often the player's hand beats one random opponent.

    Args:
        player_cards: The player's 2 cards
        community_cards: Known community cards (0-5)
        iterations: Number of deals to simulate, within the configured bounds
        config: Iteration bounds, batch size and worker count
        cancellation_token: Polled between batches; once set the run stops
        progress_callback: Called after each batch with the completed fraction
        rng: Source of the per-batch seeds

    Returns:
        SimulationResult, or None if the run was cancelled

    Raises:
        InvalidConfigurationError: if the request is invalid; nothing is simulated
    """
    config = config or SimulationConfig()
    player_cards = list(player_cards)
    community_cards = list(community_cards)

    error = validate_configuration(
        player_cards, community_cards, iterations,
        config.min_iterations, config.max_iterations
    )
    if error is not None:
        logger.warning("Rejected simulation request: %s", error)
        raise InvalidConfigurationError(error)

    start_time = time.perf_counter()
    rng = rng if rng is not None else np.random.default_rng()

    sizes = _batch_sizes(iterations, config.batch_size)
    seeds = [int(seed) for seed in rng.integers(0, 2**63 - 1, size=len(sizes))]
    tally = _Tally(len(sizes), progress_callback)

    logger.info(
        "Simulating %s vs random hand on [%s]: %d iterations in %d batches, %d worker(s)",
        ' '.join(str(c) for c in player_cards),
        ' '.join(str(c) for c in community_cards),
        iterations, len(sizes), config.workers
    )

    if config.workers > 1 and len(sizes) > 1:
        completed = _run_parallel(
            player_cards, community_cards, sizes, seeds, tally, cancellation_token, config.workers
        )
    else:
        completed = _run_sequential(
            player_cards, community_cards, sizes, seeds, tally, cancellation_token
        )

    if not completed:
        logger.info("Simulation cancelled after %d of %d batches", tally.batches_done, len(sizes))
        return None

    elapsed_time = time.perf_counter() - start_time
    result = SimulationResult(
        wins=tally.wins,
        ties=tally.ties,
        losses=tally.losses,
        total_simulations=tally.wins + tally.ties + tally.losses,
        elapsed_time=elapsed_time,
        equity_history=tuple(tally.equity_history)
    )
    logger.debug(
        "Simulation finished in %.2fs: %d wins, %d ties, %d losses",
        elapsed_time, result.wins, result.ties, result.losses
    )
    return result


class SimulationState(Enum):
    """Where a session stands with its latest run."""
    IDLE = "idle"
    RUNNING = "running"
    COMPLETED = "completed"
    CANCELLED = "cancelled"
    ERROR = "error"


class SimulationSession:
    """
    Drives simulations for an interactive caller.

    Holds the chosen iteration count, the state of the latest run, its
    progress and result. `run` blocks; `cancel` may be called from any thread
    while a run is in progress.
    """

    def __init__(
        self,
        config: Optional[SimulationConfig] = None,
        iterations: int = DEFAULT_ITERATIONS,
        rng: Optional[np.random.Generator] = None
    ):
        self.config = config or SimulationConfig()
        self.rng = rng
        self.state = SimulationState.IDLE
        self.progress = 0.0
        self.result: Optional[SimulationResult] = None
        self.error_message: Optional[str] = None
        self.iterations = self.clamp_iterations(iterations)
        self._fast_mode = False
        self._token: Optional[CancellationToken] = None
        self._lock = threading.Lock()

    @property
    def fast_mode(self) -> bool:
        return self._fast_mode

    @fast_mode.setter
    def fast_mode(self, enabled: bool):
        self._fast_mode = enabled
        self.iterations = self.clamp_iterations(FAST_MODE_ITERATIONS if enabled else DEFAULT_ITERATIONS)

    @property
    def is_running(self) -> bool:
        return self.state == SimulationState.RUNNING

    def clamp_iterations(self, iterations: int) -> int:
        return max(self.config.min_iterations, min(self.config.max_iterations, iterations))

    def update_iterations(self, iterations: int):
        self.iterations = self.clamp_iterations(iterations)

    def estimated_duration_text(self) -> str:
        seconds = estimated_duration(self.iterations, self.config.iterations_per_second)
        if seconds < 1.0:
            return "< 1 second"
        elif seconds < 60.0:
            return f"~{seconds:.0f} seconds"
        return f"~{seconds / 60.0:.1f} minutes"

    def _on_progress(self, progress: float):
        token = self._token
        if token is not None and not token.is_cancelled:
            self.progress = progress

    def run(self, player_cards: Sequence[Card], community_cards: Sequence[Card] = ()) -> Optional[SimulationResult]:
        """
        Run one simulation and record its outcome.

        Returns:
            The result on completion, None if cancelled or invalid
        """
        with self._lock:
            if self._token is not None:
                raise RuntimeError("A simulation is already running")
            self.state = SimulationState.RUNNING
            self.progress = 0.0
            self.result = None
            self.error_message = None
            token = self._token = CancellationToken()

        try:
            result = simulate(
                player_cards,
                community_cards,
                self.iterations,
                config=self.config,
                cancellation_token=token,
                progress_callback=self._on_progress,
                rng=self.rng
            )
        except InvalidConfigurationError as e:
            with self._lock:
                self.state = SimulationState.ERROR
                self.error_message = str(e)
                self.progress = 0.0
                self._token = None
            return None
        except Exception as e:
            logger.exception("Simulation failed")
            with self._lock:
                self.state = SimulationState.ERROR
                self.error_message = f"Simulation failed: {e}"
                self.progress = 0.0
                self._token = None
            raise

        with self._lock:
            if result is not None:
                self.result = result
                self.state = SimulationState.COMPLETED
            elif token.is_cancelled:
                self.state = SimulationState.CANCELLED
            else:
                self.state = SimulationState.ERROR
                self.error_message = "Simulation failed"
            self.progress = 0.0
            self._token = None
        return result

    def cancel(self):
        """Ask the running simulation to stop at its next batch boundary."""
        with self._lock:
            if self._token is not None:
                self._token.cancel()
            if self.state == SimulationState.RUNNING:
                self.state = SimulationState.CANCELLED
            self.progress = 0.0

    def reset(self):
        """Forget the latest result and return to idle."""
        with self._lock:
            if self._token is not None:
                raise RuntimeError("Cannot reset while a simulation is running")
            self.state = SimulationState.IDLE
            self.result = None
            self.error_message = None
            self.progress = 0.0
