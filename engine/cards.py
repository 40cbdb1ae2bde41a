from __future__ import annotations

import random
from dataclasses import dataclass
from typing import List, Optional, Sequence

RANKS = tuple(range(2, 15))
SUITS = "cdhs"
RANK_LABELS = {10: "T", 11: "J", 12: "Q", 13: "K", 14: "A"}
LABEL_RANKS = {label: rank for rank, label in RANK_LABELS.items()}


@dataclass(frozen=True)
class Card:
    rank: int
    suit: str

    def __post_init__(self) -> None:
        if self.rank not in RANKS:
            raise ValueError(f"Invalid rank: {self.rank}")
        if self.suit not in SUITS:
            raise ValueError(f"Invalid suit: {self.suit}")

    @property
    def label(self) -> str:
        return f"{RANK_LABELS.get(self.rank, str(self.rank))}{self.suit}"

    def __str__(self) -> str:
        return self.label


def full_deck() -> List[Card]:
    return [Card(rank, suit) for suit in SUITS for rank in RANKS]


def build_deck(seed: Optional[int] = None) -> List[Card]:
    """Shuffle the 52 cards with a seeded Fisher-Yates; equal seeds give equal decks."""
    rng = random.Random(seed)
    deck = full_deck()
    rng.shuffle(deck)
    return deck


def deal(deck: List[Card], count: int) -> List[Card]:
    if len(deck) < count:
        raise ValueError("Not enough cards left in deck")
    cards = deck[:count]
    del deck[:count]
    return cards


def cards_to_labels(cards: Sequence[Card]) -> List[str]:
    return [card.label for card in cards]


def parse_label(label: str) -> Card:
    if len(label) != 2:
        raise ValueError(f"Invalid card label: {label}")
    rank_char, suit = label[0].upper(), label[1].lower()
    if rank_char in LABEL_RANKS:
        rank = LABEL_RANKS[rank_char]
    elif rank_char.isdigit() and rank_char not in "01":
        rank = int(rank_char)
    else:
        raise ValueError(f"Invalid rank: {label[0]}")
    return Card(rank, suit)


def parse_cards(labels: Sequence[str]) -> List[Card]:
    return [parse_label(label) for label in labels]
