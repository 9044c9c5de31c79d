#!/usr/bin/env python3
"""
Command-line entry point for the heads-up Texas Hold'em odds calculator.
"""

import argparse
import logging
import sys
import threading
from typing import List, Optional

import matplotlib.pyplot as plt
import numpy as np
from tqdm import tqdm

from card_types import SimulationConfig, SimulationResult, format_cards, parse_cards, street_name
from simulator import SimulationSession, SimulationState, validate_configuration


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Heads-up Texas Hold'em Monte Carlo odds calculator",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s --hand "As Ks"                        # Preflop, 20,000 iterations
  %(prog)s --hand AhAd --board "7c 8d 9s"        # On the flop
  %(prog)s --hand "Qh Jh" --board "Th 9h 2c" --fast
  %(prog)s --hand "As Ks" -n 150000 --high-precision --workers 4
        """
    )

    # Game setup
    parser.add_argument(
        '-H', '--hand',
        type=str,
        required=True,
        help='Player cards, e.g. "As Ks" or "AsKs"'
    )
    parser.add_argument(
        '-b', '--board',
        type=str,
        default='',
        help='Community cards (0-5), e.g. "Qh Jh Th"'
    )

    # Simulation parameters
    parser.add_argument(
        '-n', '--iterations',
        type=int,
        help='Number of iterations (default: 20000, or 8000 with --fast)'
    )
    parser.add_argument(
        '--fast',
        action='store_true',
        help='Fast mode: fewer iterations for a quicker, rougher answer'
    )
    parser.add_argument(
        '--high-precision',
        action='store_true',
        help='Raise the iteration ceiling from 100,000 to 200,000'
    )
    parser.add_argument(
        '--batch-size',
        type=int,
        default=1000,
        help='Iterations per batch between progress updates (default: 1000)'
    )
    parser.add_argument(
        '-w', '--workers',
        type=int,
        default=1,
        help='Worker processes (default: 1)'
    )
    parser.add_argument(
        '-s', '--seed',
        type=int,
        help='Random seed for reproducibility'
    )

    # Output options
    parser.add_argument(
        '--estimate',
        action='store_true',
        help='Only print the estimated run time and exit'
    )
    parser.add_argument(
        '--plot',
        action='store_true',
        help='Plot equity convergence after the run'
    )
    parser.add_argument(
        '-v', '--verbose',
        action='store_true',
        help='Debug logging'
    )
    return parser


def print_game_state(player_cards, community_cards):
    """Print the requested situation in a readable format."""
    print("\n" + "="*50)
    print("GAME STATE")
    print("="*50)
    print(f"Player: {format_cards(player_cards)}")
    board = format_cards(community_cards) if community_cards else "(empty)"
    print(f"Board:  {board}  [{street_name(len(community_cards))}]")
    print()


def plot_convergence(result: SimulationResult, batch_size: int):
    """Plot the running equity estimate after each batch."""
    history = np.array(result.equity_history) * 100
    iterations = np.minimum(np.arange(1, len(history) + 1) * batch_size, result.total_simulations)

    plt.figure(figsize=(12, 6))
    plt.plot(iterations, history, label='Equity')
    plt.axhline(result.equity * 100, color='grey', linestyle='--', alpha=0.6, label='Final estimate')
    plt.xlabel('Iteration')
    plt.ylabel('Equity (%)')
    plt.title('Equity Convergence')
    plt.legend()
    plt.grid(True, alpha=0.3)
    plt.show()


def run_with_progress(session: SimulationSession, player_cards, community_cards) -> Optional[SimulationResult]:
    """Run the session in a background thread, showing progress. Ctrl-C cancels."""
    outcome = {}

    def target():
        try:
            outcome['result'] = session.run(player_cards, community_cards)
        except Exception as e:
            outcome['error'] = e

    worker = threading.Thread(target=target, name="simulation", daemon=True)
    pbar = tqdm(total=session.iterations, desc="Simulating", unit="iter")
    worker.start()
    try:
        while worker.is_alive():
            worker.join(timeout=0.1)
            pbar.n = round(session.progress * session.iterations)
            pbar.refresh()
    except KeyboardInterrupt:
        session.cancel()
        worker.join()
    finally:
        if session.state == SimulationState.COMPLETED:
            pbar.n = session.iterations
            pbar.refresh()
        pbar.close()

    if 'error' in outcome:
        raise outcome['error']
    return outcome.get('result')


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    try:
        player_cards = parse_cards(args.hand)
        community_cards = parse_cards(args.board)
        factory = SimulationConfig.high_precision if args.high_precision else SimulationConfig
        config = factory(batch_size=args.batch_size, workers=args.workers)
    except ValueError as e:
        print(f"Error: {e}")
        return 1

    rng = np.random.default_rng(args.seed)
    if args.seed is not None:
        print(f"Using random seed: {args.seed}")

    session = SimulationSession(config=config, rng=rng)
    session.fast_mode = args.fast
    if args.iterations is not None:
        session.update_iterations(args.iterations)
        if session.iterations != args.iterations:
            print(f"Iterations clamped to {session.iterations:,} "
                  f"(allowed {config.min_iterations:,}-{config.max_iterations:,})")

    error = validate_configuration(
        player_cards, community_cards, session.iterations,
        config.min_iterations, config.max_iterations
    )
    if error is not None:
        print(f"Error: {error}")
        return 1

    print_game_state(player_cards, community_cards)
    print(f"Iterations: {session.iterations:,} (estimated {session.estimated_duration_text()})")
    if args.estimate:
        return 0
    print()

    result = run_with_progress(session, player_cards, community_cards)

    if session.state == SimulationState.CANCELLED:
        print("\nSimulation cancelled.")
        return 130
    if result is None:
        print(f"Error: {session.error_message}")
        return 1

    result.print_summary()

    if args.plot:
        plot_convergence(result, config.batch_size)
    return 0


if __name__ == "__main__":
    sys.exit(main())
