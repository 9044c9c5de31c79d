"""
Data structures and types for the heads-up Texas Hold'em odds calculator.
"""

import math
import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum
from functools import total_ordering
from typing import Iterable, List, Optional, Sequence, Tuple
import numpy as np
import numpy.typing as npt


class CardColor(Enum):
    """Display colour of a suit."""
    RED = "red"
    BLACK = "black"


class Suit(IntEnum):
    """Card suits. The ordinal only breaks ties when sorting cards."""
    SPADES = 0
    HEARTS = 1
    DIAMONDS = 2
    CLUBS = 3

    @property
    def symbol(self) -> str:
        return {
            Suit.SPADES: '♠',
            Suit.HEARTS: '♥',
            Suit.DIAMONDS: '♦',
            Suit.CLUBS: '♣'
        }[self]

    @property
    def color(self) -> CardColor:
        if self in (Suit.SPADES, Suit.CLUBS):
            return CardColor.BLACK
        return CardColor.RED

    def __str__(self):
        return {
            Suit.SPADES: 's',
            Suit.HEARTS: 'h',
            Suit.DIAMONDS: 'd',
            Suit.CLUBS: 'c'
        }[self]


class Rank(IntEnum):
    """Card ranks from 2 to Ace. Aces are high unless asked for low_ace_value."""
    TWO = 2
    THREE = 3
    FOUR = 4
    FIVE = 5
    SIX = 6
    SEVEN = 7
    EIGHT = 8
    NINE = 9
    TEN = 10
    JACK = 11
    QUEEN = 12
    KING = 13
    ACE = 14

    @property
    def low_ace_value(self) -> int:
        """Value used for the A-2-3-4-5 straight, where the ace plays as 1."""
        return 1 if self == Rank.ACE else int(self)

    @property
    def symbol(self) -> str:
        """Display form, spelling the ten out as '10'."""
        return '10' if self == Rank.TEN else str(self)

    def __str__(self):
        if self == Rank.ACE:
            return 'A'
        elif self == Rank.KING:
            return 'K'
        elif self == Rank.QUEEN:
            return 'Q'
        elif self == Rank.JACK:
            return 'J'
        elif self == Rank.TEN:
            return 'T'
        else:
            return str(self.value)


class HandRank(IntEnum):
    """Poker hand categories from high card to royal flush."""
    HIGH_CARD = 0
    PAIR = 1
    TWO_PAIR = 2
    THREE_OF_A_KIND = 3
    STRAIGHT = 4
    FLUSH = 5
    FULL_HOUSE = 6
    FOUR_OF_A_KIND = 7
    STRAIGHT_FLUSH = 8
    ROYAL_FLUSH = 9

    def __str__(self):
        return self.name.replace('_', ' ').title()


# Number of kicker slots each category fills in an evaluation vector.
KICKER_COUNTS = {
    HandRank.HIGH_CARD: 4,
    HandRank.PAIR: 3,
    HandRank.TWO_PAIR: 1,
    HandRank.THREE_OF_A_KIND: 2,
    HandRank.STRAIGHT: 0,
    HandRank.FLUSH: 4,
    HandRank.FULL_HOUSE: 0,
    HandRank.FOUR_OF_A_KIND: 1,
    HandRank.STRAIGHT_FLUSH: 0,
    HandRank.ROYAL_FLUSH: 0,
}

# [category, primary, secondary, kicker1..kicker4]
VECTOR_LENGTH = 7


@total_ordering
@dataclass(frozen=True)
class Card:
    """Represents a playing card."""
    rank: Rank
    suit: Suit

    def __post_init__(self):
        # Accept plain ints, reject anything outside the 52-card universe
        object.__setattr__(self, 'rank', Rank(self.rank))
        object.__setattr__(self, 'suit', Suit(self.suit))

    def __str__(self):
        return f"{self.rank}{self.suit}"

    def __repr__(self):
        return f"Card({self})"

    def __eq__(self, other):
        if isinstance(other, Card):
            return self.rank == other.rank and self.suit == other.suit
        return NotImplemented

    def __hash__(self):
        return hash((self.rank, self.suit))

    def __lt__(self, other):
        """Compare cards by rank first, then suit."""
        if isinstance(other, Card):
            if self.rank != other.rank:
                return self.rank < other.rank
            return self.suit < other.suit
        return NotImplemented

    @property
    def index(self) -> int:
        """Dense identifier in 0..51."""
        return int(self.suit) * 13 + int(self.rank) - 2

    @property
    def symbol(self) -> str:
        """Display form, e.g. 'A♠' or '10♥'."""
        return f"{self.rank.symbol}{self.suit.symbol}"

    @property
    def color(self) -> CardColor:
        return self.suit.color

    def to_array(self) -> Tuple[int, int]:
        """Row format used by the compiled evaluator: (rank, suit)."""
        return int(self.rank), int(self.suit)


def cards_to_array(cards: Sequence[Card]) -> npt.NDArray[np.int32]:
    """Convert cards to an (n, 2) array of [rank, suit] rows."""
    return np.array([card.to_array() for card in cards], dtype=np.int32).reshape(len(cards), 2)


@total_ordering
@dataclass(frozen=True, eq=False)
class HandEvaluation:
    """
    The best 5-card hand found for a set of cards.

    Hands compare by category, then primary value, then secondary value, then
    kickers pairwise. The five cards take no part in comparisons.
    """
    category: HandRank
    primary_value: int = 0
    secondary_value: int = 0
    kickers: Tuple[int, ...] = ()
    cards: Tuple[Card, ...] = field(default=())

    def __post_init__(self):
        object.__setattr__(self, 'category', HandRank(self.category))
        kicker_count = KICKER_COUNTS[self.category]
        kickers = sorted((int(k) for k in self.kickers), reverse=True)
        if len(kickers) > kicker_count:
            raise ValueError(
                f"{self.category} takes at most {kicker_count} kickers, got {len(kickers)}"
            )
        # Missing kickers count as zero so every hand of a category compares on equal terms
        kickers += [0] * (kicker_count - len(kickers))
        object.__setattr__(self, 'kickers', tuple(kickers))
        object.__setattr__(self, 'cards', tuple(sorted(self.cards, reverse=True)))

    @classmethod
    def from_vector(cls, vector: Sequence[int], cards: Sequence[Card] = ()) -> 'HandEvaluation':
        """Build an evaluation from the evaluator's fixed-width vector."""
        category = HandRank(int(vector[0]))
        kicker_count = KICKER_COUNTS[category]
        return cls(
            category=category,
            primary_value=int(vector[1]),
            secondary_value=int(vector[2]),
            kickers=tuple(int(k) for k in vector[3:3 + kicker_count]),
            cards=tuple(cards)
        )

    def to_vector(self) -> List[int]:
        """Convert to the fixed-width comparison vector, zero padded."""
        padding = [0] * (VECTOR_LENGTH - 3 - len(self.kickers))
        return [int(self.category), self.primary_value, self.secondary_value] + list(self.kickers) + padding

    def _compare(self, other: 'HandEvaluation') -> int:
        head = (self.category, self.primary_value, self.secondary_value)
        other_head = (other.category, other.primary_value, other.secondary_value)
        if head != other_head:
            return 1 if head > other_head else -1
        for mine, theirs in zip(self.kickers, other.kickers):
            if mine != theirs:
                return 1 if mine > theirs else -1
        return 0

    def __eq__(self, other):
        if not isinstance(other, HandEvaluation):
            return NotImplemented
        return (self.category == other.category
                and self.primary_value == other.primary_value
                and self.secondary_value == other.secondary_value
                and self.kickers == other.kickers)

    def __hash__(self):
        return hash((self.category, self.primary_value, self.secondary_value, self.kickers))

    def __lt__(self, other):
        if not isinstance(other, HandEvaluation):
            return NotImplemented
        return self._compare(other) < 0

    def __gt__(self, other):
        if not isinstance(other, HandEvaluation):
            return NotImplemented
        return self._compare(other) > 0

    def __str__(self):
        primary = Rank(self.primary_value) if self.primary_value >= 2 else self.primary_value
        if self.category == HandRank.HIGH_CARD:
            return f"High Card, {primary} high"
        elif self.category == HandRank.PAIR:
            return f"Pair of {primary}s"
        elif self.category == HandRank.TWO_PAIR:
            return f"Two Pair, {primary}s and {Rank(self.secondary_value)}s"
        elif self.category == HandRank.THREE_OF_A_KIND:
            return f"Three of a Kind, {primary}s"
        elif self.category == HandRank.STRAIGHT:
            return f"Straight to {primary}"
        elif self.category == HandRank.FLUSH:
            return f"Flush, {primary} high"
        elif self.category == HandRank.FULL_HOUSE:
            return f"Full House, {primary}s full of {Rank(self.secondary_value)}s"
        elif self.category == HandRank.FOUR_OF_A_KIND:
            return f"Four of a Kind, {primary}s"
        elif self.category == HandRank.STRAIGHT_FLUSH:
            return f"Straight Flush to {primary}"
        return "Royal Flush"


DEFAULT_MIN_ITERATIONS = 5000
DEFAULT_MAX_ITERATIONS = 100000
HIGH_PRECISION_MAX_ITERATIONS = 200000


@dataclass
class SimulationConfig:
    """Configuration for Monte Carlo simulation."""
    min_iterations: int = DEFAULT_MIN_ITERATIONS
    max_iterations: int = DEFAULT_MAX_ITERATIONS
    batch_size: int = 1000
    workers: int = 1
    iterations_per_second: float = 50000.0

    def __post_init__(self):
        if self.min_iterations < 1:
            raise ValueError(f"min_iterations must be at least 1, got {self.min_iterations}")
        if self.max_iterations < self.min_iterations:
            raise ValueError(
                f"max_iterations ({self.max_iterations}) must not be below "
                f"min_iterations ({self.min_iterations})"
            )
        if self.batch_size < 1:
            raise ValueError(f"batch_size must be at least 1, got {self.batch_size}")
        if self.workers < 1:
            raise ValueError(f"workers must be at least 1, got {self.workers}")
        if self.iterations_per_second <= 0:
            raise ValueError(f"iterations_per_second must be positive, got {self.iterations_per_second}")

    @classmethod
    def high_precision(cls, **overrides) -> 'SimulationConfig':
        """Configuration with the raised iteration ceiling."""
        overrides.setdefault('max_iterations', HIGH_PRECISION_MAX_ITERATIONS)
        return cls(**overrides)


@dataclass(frozen=True)
class SimulationResult:
    """Results from a Monte Carlo simulation."""
    wins: int
    ties: int
    losses: int
    total_simulations: int
    elapsed_time: float
    equity_history: Tuple[float, ...] = ()  # running equity after each batch

    def _percentage(self, count: int) -> float:
        if self.total_simulations <= 0:
            return 0.0
        return count / self.total_simulations * 100.0

    @property
    def win_percentage(self) -> float:
        return self._percentage(self.wins)

    @property
    def tie_percentage(self) -> float:
        return self._percentage(self.ties)

    @property
    def loss_percentage(self) -> float:
        return self._percentage(self.losses)

    @property
    def equity(self) -> float:
        """Share of the pot won on average: wins plus half of ties."""
        if self.total_simulations <= 0:
            return 0.0
        return (self.wins + 0.5 * self.ties) / self.total_simulations

    @property
    def standard_error(self) -> float:
        """Standard error of the win-rate estimate (Bernoulli trials)."""
        if self.total_simulations <= 0:
            return 0.0
        p = self.wins / self.total_simulations
        return math.sqrt(p * (1 - p) / self.total_simulations)

    @property
    def iterations_per_second(self) -> float:
        if self.elapsed_time <= 0:
            return 0.0
        return self.total_simulations / self.elapsed_time

    def print_summary(self):
        """Print a summary of the simulation results."""
        print("\n" + "="*50)
        print("SIMULATION RESULTS")
        print("="*50)
        print(f"Iterations: {self.total_simulations}")
        print(f"Total time: {self.elapsed_time:.2f} seconds")
        print(f"Iterations per second: {self.iterations_per_second:.0f}")
        print()
        print(f"  Win:  {self.win_percentage:6.2f}%  ({self.wins})")
        print(f"  Tie:  {self.tie_percentage:6.2f}%  ({self.ties})")
        print(f"  Loss: {self.loss_percentage:6.2f}%  ({self.losses})")
        print(f"\nEquity: {self.equity*100:.2f}% (±{self.standard_error*100:.2f}% std error)")


_RANK_TOKENS = {
    '2': Rank.TWO, '3': Rank.THREE, '4': Rank.FOUR, '5': Rank.FIVE,
    '6': Rank.SIX, '7': Rank.SEVEN, '8': Rank.EIGHT, '9': Rank.NINE,
    'T': Rank.TEN, '10': Rank.TEN, 'J': Rank.JACK, 'Q': Rank.QUEEN,
    'K': Rank.KING, 'A': Rank.ACE
}

_SUIT_TOKENS = {
    'S': Suit.SPADES, '♠': Suit.SPADES,
    'H': Suit.HEARTS, '♥': Suit.HEARTS,
    'D': Suit.DIAMONDS, '♦': Suit.DIAMONDS,
    'C': Suit.CLUBS, '♣': Suit.CLUBS
}

_CARD_PATTERN = re.compile(r'(10|[2-9TJQKA])([SHDC♠♥♦♣])')


def parse_card(card_str: str) -> Card:
    """
    Parse a card string like 'As', 'KH', '10d' or 'Q♥'.

    Args:
        card_str: Card string

    Returns:
        The parsed Card
    """
    token = card_str.strip().upper()
    match = _CARD_PATTERN.fullmatch(token)
    if match is None:
        raise ValueError(f"Invalid card format: {card_str!r}")
    return Card(_RANK_TOKENS[match.group(1)], _SUIT_TOKENS[match.group(2)])


def parse_cards(cards_str: Optional[str]) -> List[Card]:
    """
    Parse a run of cards, e.g. "As Ks", "AsKs" or "Qh,Jh,10h".

    An empty or missing string yields no cards.
    """
    if not cards_str:
        return []
    compact = re.sub(r'[\s,]+', '', cards_str).upper()
    cards = []
    position = 0
    while position < len(compact):
        match = _CARD_PATTERN.match(compact, position)
        if match is None:
            raise ValueError(f"Invalid card near {compact[position:position + 3]!r} in {cards_str!r}")
        cards.append(Card(_RANK_TOKENS[match.group(1)], _SUIT_TOKENS[match.group(2)]))
        position = match.end()
    return cards


def format_cards(cards: Iterable[Card]) -> str:
    """Display form of several cards, e.g. 'A♠ K♠'."""
    return ' '.join(card.symbol for card in cards)


def street_name(community_count: int) -> str:
    """Name the betting round for a number of community cards."""
    return {0: "preflop", 3: "flop", 4: "turn", 5: "river"}.get(
        community_count, f"{community_count}-card board"
    )


def create_standard_deck() -> List[Card]:
    """Create a standard 52-card deck."""
    deck = []
    for suit in Suit:
        for rank in Rank:
            deck.append(Card(rank, suit))
    return deck
