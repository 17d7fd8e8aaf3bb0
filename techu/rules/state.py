"""
Constants and state helpers for Techu.

Cards, deck generation, board/grid helpers, rule options and initial state
creation. The board is a flat list of cells in row-major order; each cell
is a stack of cards, bottom first, and only the last card is in play.
"""

import random
from dataclasses import dataclass, asdict

# ── Card Constants ────────────────────────────────────────────────────

PLAYER1 = "player1"
PLAYER2 = "player2"
PLAYERS = (PLAYER1, PLAYER2)

RED = "red"
BLACK = "black"

SUITS_BY_COLOR = {
    RED: ("♥", "♦"),
    BLACK: ("♣", "♠"),
}
SUIT_COLORS = {suit: color for color, suits in SUITS_BY_COLOR.items() for suit in suits}

RANKS = ("2", "3", "4", "5", "6", "7", "8", "9", "10", "J", "Q", "K", "A")
RANK_ORDER = {rank: i for i, rank in enumerate(RANKS, start=2)}  # 2..14, Ace high

PLAYER_COLORS = {PLAYER1: RED, PLAYER2: BLACK}
COLOR_OWNERS = {RED: PLAYER1, BLACK: PLAYER2}
PLAYER_NAMES = {PLAYER1: "Player 1", PLAYER2: "Player 2"}

BOARD_SIZE = 5
HAND_SIZE = 3
DECK_SIZE = len(RANKS) * 2  # 26


# ── Rule Options ──────────────────────────────────────────────────────

@dataclass(frozen=True)
class Rules:
    """Switches for rule variants. Defaults reproduce the classic game."""
    # Only the opponent's color may be captured outside the home row.
    strict_color_capture: bool = False
    # Discarding is only offered when the card has no board target.
    discard_only_when_blocked: bool = False
    # Board targets are re-checked when a move is applied.
    enforce_legal_targets: bool = False

    def to_dict(self):
        return asdict(self)

    @classmethod
    def from_dict(cls, data):
        data = data or {}
        return cls(**{k: bool(v) for k, v in data.items() if k in cls.__dataclass_fields__})


def rules_of(state):
    return Rules.from_dict(state.get("rules"))


# ── Card Helpers ──────────────────────────────────────────────────────

def make_card(rank, suit, owner=None, face_down=False):
    """Build a card dict. Owner defaults to the player whose color the suit is."""
    color = SUIT_COLORS[suit]
    return {
        "suit": suit,
        "rank": rank,
        "color": color,
        "owner": owner or COLOR_OWNERS[color],
        "face_down": face_down,
    }


def rank_value(rank):
    return RANK_ORDER[rank]


def beats(card, other):
    """True if card outranks other. Equal ranks never beat each other."""
    return rank_value(card["rank"]) > rank_value(other["rank"])


def card_label(card):
    return f"{card['rank']}{card['suit']}"


def other_player(player_id):
    return PLAYER2 if player_id == PLAYER1 else PLAYER1


# ── Deck Generation ──────────────────────────────────────────────────

def create_deck(color, owner):
    """Return the 26 cards of one color, unshuffled, suit by suit."""
    deck = []
    for suit in SUITS_BY_COLOR[color]:
        for rank in RANKS:
            deck.append({
                "suit": suit,
                "rank": rank,
                "color": color,
                "owner": owner,
                "face_down": False,
            })
    return deck


def shuffle(deck, rng=None):
    """Fisher-Yates shuffle in place. Uses the module RNG unless one is given."""
    rng = rng or random
    for i in range(len(deck) - 1, 0, -1):
        j = rng.randint(0, i)
        deck[i], deck[j] = deck[j], deck[i]
    return deck


def initialize_player(color, player_id, rng=None):
    """Shuffle a fresh deck and deal the opening hand off the top."""
    deck = shuffle(create_deck(color, player_id), rng)
    return {
        "id": player_id,
        "color": color,
        "hand": deck[:HAND_SIZE],
        "deck": deck[HAND_SIZE:],
    }


# ── Board Helpers ─────────────────────────────────────────────────────

def create_board(board_size=BOARD_SIZE):
    return [[] for _ in range(board_size * board_size)]


def top_card_of(cell):
    return cell[-1] if cell else None


def push_card(board, cell_index, card):
    """
    Return a new board with card stacked on cell_index.
    Untouched cells are shared with the input; the input is never modified.
    """
    new_board = list(board)
    new_board[cell_index] = board[cell_index] + [card]
    return new_board


def home_row_indices(player_id, board_size=BOARD_SIZE):
    """Player 1 sits at the bottom row, Player 2 at the top row."""
    row = board_size - 1 if player_id == PLAYER1 else 0
    return [row * board_size + col for col in range(board_size)]


def seed_index(player_id, board_size=BOARD_SIZE):
    return home_row_indices(player_id, board_size)[board_size // 2]


def adjacent_indices(index, board_size=BOARD_SIZE):
    """Orthogonal neighbours of a cell. No wrap-around at the edges."""
    row, col = divmod(index, board_size)
    neighbors = []
    if row > 0:
        neighbors.append(index - board_size)
    if row < board_size - 1:
        neighbors.append(index + board_size)
    if col > 0:
        neighbors.append(index - 1)
    if col < board_size - 1:
        neighbors.append(index + 1)
    return neighbors


# ── State Creation ───────────────────────────────────────────────────

def create_initial_state(rules=None, rng=None, board_size=BOARD_SIZE):
    """Build the full initial game state: empty board, dealt hands, Player 1 to move."""
    rules = rules or Rules()
    return {
        "game": "techu",
        "board_size": board_size,
        "board": create_board(board_size),
        "players": {
            player_id: initialize_player(PLAYER_COLORS[player_id], player_id, rng)
            for player_id in PLAYERS
        },
        "discard": {player_id: [] for player_id in PLAYERS},
        "current_player": PLAYER1,
        "turn_number": 0,
        "status": {
            "first_move": {player_id: True for player_id in PLAYERS},
            "tie_breaker": False,
            "pending": {player_id: None for player_id in PLAYERS},
            "game_over": False,
        },
        "rules": rules.to_dict(),
        "scores": None,
        "winner": None,
    }


# ── Query Helpers ─────────────────────────────────────────────────────

def cards_accounted_for(state, player_id):
    """
    Count every card a player started with: hand, deck, board (by owner)
    and discard. Always DECK_SIZE for a consistent state.
    """
    player = state["players"][player_id]
    in_hand = sum(1 for card in player["hand"] if card is not None)
    on_board = sum(
        1 for cell in state["board"] for card in cell if card["owner"] == player_id
    )
    return in_hand + len(player["deck"]) + on_board + len(state["discard"][player_id])
