"""
Hand evaluation logic for Texas Hold'em.

Cards are handled by the compiled kernels as (n, 2) int32 arrays where each row
is [rank, suit]. A scored 5-card hand is a vector of VECTOR_LENGTH integers:
[category, primary, secondary, kicker1, kicker2, kicker3, kicker4], with unused
slots set to zero, so that lexicographic order on vectors is hand order.
"""

from typing import Sequence, Tuple
import numpy as np
import numpy.typing as npt
from numba import jit

from card_types import Card, HandEvaluation, HandRank, VECTOR_LENGTH, cards_to_array

HIGH_CARD = int(HandRank.HIGH_CARD)
PAIR = int(HandRank.PAIR)
TWO_PAIR = int(HandRank.TWO_PAIR)
THREE_OF_A_KIND = int(HandRank.THREE_OF_A_KIND)
STRAIGHT = int(HandRank.STRAIGHT)
FLUSH = int(HandRank.FLUSH)
FULL_HOUSE = int(HandRank.FULL_HOUSE)
FOUR_OF_A_KIND = int(HandRank.FOUR_OF_A_KIND)
STRAIGHT_FLUSH = int(HandRank.STRAIGHT_FLUSH)
ROYAL_FLUSH = int(HandRank.ROYAL_FLUSH)

ACE = 14


@jit(nopython=True)
def count_ranks(hand: npt.NDArray[np.int32]) -> npt.NDArray[np.int32]:
    """
    Count how many cards of each rank a hand holds.

    Args:
        hand: (n,2) array where each row is [rank, suit]

    Returns:
        Array of length 15 indexed by rank value
    """
    counts = np.zeros(15, dtype=np.int32)
    for i in range(hand.shape[0]):
        counts[hand[i, 0]] += 1
    return counts


@jit(nopython=True)
def straight_high_card(counts: npt.NDArray[np.int32]) -> int:
    """
    High card of the straight in a 5-card hand, or 0 if there is none.

    The wheel (A-2-3-4-5) counts the ace as 1 and so is a 5-high straight.
    """
    for high in range(ACE, 5, -1):
        if (counts[high] == 1 and counts[high - 1] == 1 and counts[high - 2] == 1
                and counts[high - 3] == 1 and counts[high - 4] == 1):
            return high
    if (counts[ACE] == 1 and counts[2] == 1 and counts[3] == 1
            and counts[4] == 1 and counts[5] == 1):
        return 5
    return 0


@jit(nopython=True)
def is_flush(hand: npt.NDArray[np.int32]) -> bool:
    for i in range(1, hand.shape[0]):
        if hand[i, 1] != hand[0, 1]:
            return False
    return True


@jit(nopython=True)
def score_five_cards(hand: npt.NDArray[np.int32]) -> npt.NDArray[np.int32]:
    """
    Evaluate a 5-card poker hand.

    Args:
        hand: (5,2) array where each row is [rank, suit]

    Returns:
        Array of VECTOR_LENGTH integers: [category, primary, secondary, kickers...]
    """
    counts = count_ranks(hand)
    result = np.zeros(VECTOR_LENGTH, dtype=np.int32)

    flush = is_flush(hand)
    straight_high = straight_high_card(counts)

    if flush and straight_high == ACE:
        result[0] = ROYAL_FLUSH
        result[1] = ACE
        return result
    if flush and straight_high > 0:
        result[0] = STRAIGHT_FLUSH
        result[1] = straight_high
        return result

    # Walk ranks from ace down so every group comes out in descending order
    quads = 0
    trips = 0
    high_pair = 0
    low_pair = 0
    singles = np.zeros(5, dtype=np.int32)
    num_singles = 0
    for rank in range(ACE, 1, -1):
        count = counts[rank]
        if count == 4:
            quads = rank
        elif count == 3:
            trips = rank
        elif count == 2:
            if high_pair == 0:
                high_pair = rank
            else:
                low_pair = rank
        elif count == 1:
            singles[num_singles] = rank
            num_singles += 1

    if quads > 0:
        result[0] = FOUR_OF_A_KIND
        result[1] = quads
        result[3] = singles[0]
    elif trips > 0 and high_pair > 0:
        result[0] = FULL_HOUSE
        result[1] = trips
        result[2] = high_pair
    elif flush:
        result[0] = FLUSH
        result[1] = singles[0]
        for i in range(1, 5):
            result[2 + i] = singles[i]
    elif straight_high > 0:
        result[0] = STRAIGHT
        result[1] = straight_high
    elif trips > 0:
        result[0] = THREE_OF_A_KIND
        result[1] = trips
        result[3] = singles[0]
        result[4] = singles[1]
    elif low_pair > 0:
        result[0] = TWO_PAIR
        result[1] = high_pair
        result[2] = low_pair
        result[3] = singles[0]
    elif high_pair > 0:
        result[0] = PAIR
        result[1] = high_pair
        for i in range(3):
            result[3 + i] = singles[i]
    else:
        result[0] = HIGH_CARD
        result[1] = singles[0]
        for i in range(1, 5):
            result[2 + i] = singles[i]

    return result


@jit(nopython=True)
def compare_vectors(a: npt.NDArray[np.int32], b: npt.NDArray[np.int32]) -> int:
    """Lexicographic comparison: 1 if a is stronger, -1 if weaker, 0 if equal."""
    for k in range(a.shape[0]):
        if a[k] > b[k]:
            return 1
        elif a[k] < b[k]:
            return -1
    return 0


@jit(nopython=True)
def find_best_five_card_hand(
    cards: npt.NDArray[np.int32]
) -> Tuple[npt.NDArray[np.int32], npt.NDArray[np.int64]]:
    """
    Find the best 5-card hand among all 5-card subsets of the given cards.

    Subsets are visited in lexicographic order of their indices; on equal
    strength the first subset found is kept.

    Args:
        cards: (n,2) array of cards, n >= 5

    Returns:
        (strength vector of the best hand, indices of its 5 cards)
    """
    n = cards.shape[0]
    best = np.full(VECTOR_LENGTH, -1, dtype=np.int32)
    best_indices = np.zeros(5, dtype=np.int64)
    indices = np.arange(5)
    hand = np.zeros((5, 2), dtype=np.int32)

    while True:
        for k in range(5):
            hand[k, 0] = cards[indices[k], 0]
            hand[k, 1] = cards[indices[k], 1]
        strength = score_five_cards(hand)
        if compare_vectors(strength, best) > 0:
            best[:] = strength
            best_indices[:] = indices

        # Advance to the next combination
        i = 4
        while i >= 0 and indices[i] == n - 5 + i:
            i -= 1
        if i < 0:
            break
        indices[i] += 1
        for j in range(i + 1, 5):
            indices[j] = indices[j - 1] + 1

    return best, best_indices


@jit(nopython=True)
def showdown(first: npt.NDArray[np.int32], second: npt.NDArray[np.int32]) -> int:
    """Compare the best hands made from two card arrays: 1, 0 or -1."""
    first_best, _ = find_best_five_card_hand(first)
    second_best, _ = find_best_five_card_hand(second)
    return compare_vectors(first_best, second_best)


def _check_cards(cards: Sequence[Card]):
    if len(cards) < 5:
        raise ValueError(f"Hand evaluation requires at least 5 cards, got {len(cards)}")
    if len(set(cards)) != len(cards):
        raise ValueError(f"Hand contains duplicate cards: {' '.join(str(c) for c in cards)}")


def evaluate_hand(cards: Sequence[Card]) -> HandEvaluation:
    """
    Evaluate the best 5-card poker hand that can be made from the given cards.

    Args:
        cards: 5 to 7 distinct cards

    Returns:
        HandEvaluation of the strongest 5-card subset
    """
    cards = list(cards)
    _check_cards(cards)
    strength, indices = find_best_five_card_hand(cards_to_array(cards))
    return HandEvaluation.from_vector(strength, [cards[i] for i in indices])


def compare_hands(first: Sequence[Card], second: Sequence[Card]) -> int:
    """
    Compare the best hands two card sets can make.

    Returns:
        1 if the first set makes the stronger hand, -1 if the second does,
        0 for a tie
    """
    first = list(first)
    second = list(second)
    _check_cards(first)
    _check_cards(second)
    return int(showdown(cards_to_array(first), cards_to_array(second)))
