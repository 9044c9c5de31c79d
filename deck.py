"""
Standard 52-card deck with a mutable set of used cards.
"""

from typing import FrozenSet, Iterable, List, Optional, Union
import numpy as np

from card_types import Card, create_standard_deck


class Deck:
    """
    The 52-card universe plus the subset of cards already in use.

    Random draws pick uniformly among the cards not yet used and mark the
    drawn card as used. The random generator is a source of randomness rather
    than deck state, so copies share it and keep drawing from one stream.
    """

    def __init__(self, rng: Optional[np.random.Generator] = None):
        self._cards = tuple(create_standard_deck())
        self._universe = frozenset(self._cards)
        self._used = set()
        self.rng = rng if rng is not None else np.random.default_rng()

    def _as_cards(self, cards: Union[Card, Iterable[Card]]) -> List[Card]:
        if isinstance(cards, Card):
            cards = [cards]
        cards = list(cards)
        for card in cards:
            if card not in self._universe:
                raise ValueError(f"Not a card of the standard deck: {card!r}")
        return cards

    @property
    def all_cards(self) -> List[Card]:
        return list(self._cards)

    @property
    def available_cards(self) -> List[Card]:
        return [card for card in self._cards if card not in self._used]

    @property
    def used_cards(self) -> FrozenSet[Card]:
        return frozenset(self._used)

    @property
    def remaining_count(self) -> int:
        return len(self._cards) - len(self._used)

    @property
    def total_count(self) -> int:
        return len(self._cards)

    def is_available(self, card: Card) -> bool:
        return card in self._universe and card not in self._used

    def mark_as_used(self, cards: Union[Card, Iterable[Card]]):
        """Mark one card or several as used. Already used cards are left alone."""
        self._used.update(self._as_cards(cards))

    def mark_as_available(self, cards: Union[Card, Iterable[Card]]):
        """Release one card or several back into the deck."""
        self._used.difference_update(self._as_cards(cards))

    def reset(self):
        self._used.clear()

    def draw_random_card(self, rng: Optional[np.random.Generator] = None) -> Optional[Card]:
        """
        Draw one card uniformly from the available cards.

        Returns:
            The drawn card, now marked as used, or None if the deck is exhausted
        """
        available = self.available_cards
        if not available:
            return None
        rng = rng if rng is not None else self.rng
        card = available[int(rng.integers(len(available)))]
        self._used.add(card)
        return card

    def draw_random_cards(self, count: int, rng: Optional[np.random.Generator] = None) -> List[Card]:
        """
        Draw up to `count` distinct cards, one at a time.

        Stops early when the deck runs out, so callers must check the length
        of the returned list.
        """
        if count < 0:
            raise ValueError(f"Cannot draw a negative number of cards, got {count}")
        drawn = []
        for _ in range(count):
            card = self.draw_random_card(rng)
            if card is None:
                break
            drawn.append(card)
        return drawn

    def copy(self) -> 'Deck':
        """
        New deck with the same used cards.

        The used-set is copied, so marking or drawing on either deck leaves the
        other untouched. The random generator is NOT copied: `copy.rng is
        self.rng`, so draws on either deck advance the same stream. Pass a
        generator to the draw methods to decouple them.
        """
        new_deck = Deck.__new__(Deck)
        new_deck._cards = self._cards
        new_deck._universe = self._universe
        new_deck._used = set(self._used)
        new_deck.rng = self.rng
        return new_deck

    def __len__(self):
        return self.remaining_count

    def __repr__(self):
        return f"Deck(remaining={self.remaining_count}/{self.total_count})"
