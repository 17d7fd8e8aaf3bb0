"""
Techu move legality.

Which cells a hand card may be played to, and whether it may be
discarded instead. Three regimes:

- first move: the fixed seed cell only, card goes down face down
- tie-break: any home-row cell the card can legally cover
- regular: the home row, every cell connected to the home row through
  same-colored top cards, and every neighbour of that connected set

A cell can be covered when it is empty or its top card has a strictly
lower rank.
"""

import math
from collections import deque

from techu.rules.state import (
    Rules, PLAYER_COLORS, rules_of, top_card_of, beats,
    home_row_indices, seed_index, adjacent_indices,
)

BOARD = "board"
DISCARD = "discard"
HAND = "hand"


# ── Connectivity ─────────────────────────────────────────────────────

def find_connected_cells(player_id, board, color, board_size):
    """
    Flood-fill from every home-row cell topped by `color`, spreading to
    orthogonal neighbours topped by the same color. Returns a set of
    cell indices (home-row seeds included).
    """
    start = [
        i for i in home_row_indices(player_id, board_size)
        if _top_color(board[i]) == color
    ]
    visited = set(start)
    queue = deque(start)
    while queue:
        current = queue.popleft()
        for adj in adjacent_indices(current, board_size):
            if adj in visited:
                continue
            if _top_color(board[adj]) == color:
                visited.add(adj)
                queue.append(adj)
    return visited


def _top_color(cell):
    top = top_card_of(cell)
    return top["color"] if top else None


# ── Target Filtering ─────────────────────────────────────────────────

def can_cover(cell, card):
    """Empty, or topped by a strictly lower rank. Color does not matter."""
    top = top_card_of(cell)
    return top is None or beats(card, top)


def coverable_indices(indices, board, card):
    return [i for i in indices if can_cover(board[i], card)]


def calculate_legal_targets(card, player_id, board, is_first_move, is_tie_breaker,
                            rules=None, board_size=None):
    """
    Return the sorted legal cell indices for playing `card`.

    Tie-break takes precedence over the first-move flag, since both flags
    are re-armed together when a tie is declared.
    """
    rules = rules or Rules()
    board_size = board_size or math.isqrt(len(board))
    home_row = home_row_indices(player_id, board_size)

    if is_tie_breaker:
        return sorted(coverable_indices(home_row, board, card))

    if is_first_move:
        return [seed_index(player_id, board_size)]

    color = PLAYER_COLORS[player_id]
    connected = find_connected_cells(player_id, board, color, board_size)

    candidates = set(home_row) | connected
    for index in connected:
        candidates.update(adjacent_indices(index, board_size))

    targets = []
    for index in sorted(candidates):
        if not can_cover(board[index], card):
            continue
        if rules.strict_color_capture and index not in home_row:
            top = top_card_of(board[index])
            if top is not None and top["color"] == color:
                continue
        targets.append(index)
    return targets


def can_discard(is_first_move, is_tie_breaker, targets, rules=None):
    """Seeding moves can never be discarded; otherwise per the rule options."""
    rules = rules or Rules()
    if is_first_move or is_tie_breaker:
        return False
    if rules.discard_only_when_blocked:
        return not targets
    return True


# ── State-level Queries ──────────────────────────────────────────────

def get_legal_moves(state, player_id, card_index):
    """
    Legal destinations for the card in `card_index` of the player's hand:
    {"cells": [...], "can_discard": bool}. An empty or out-of-range slot
    has no moves.
    """
    hand = state["players"][player_id]["hand"]
    if not isinstance(card_index, int) or not 0 <= card_index < len(hand) or hand[card_index] is None:
        return {"cells": [], "can_discard": False}
    if state["status"]["game_over"]:
        return {"cells": [], "can_discard": False}

    status = state["status"]
    is_first_move = status["first_move"][player_id]
    is_tie_breaker = status["tie_breaker"]
    rules = rules_of(state)
    cells = calculate_legal_targets(
        hand[card_index], player_id, state["board"], is_first_move,
        is_tie_breaker, rules, state["board_size"],
    )
    return {
        "cells": cells,
        "can_discard": can_discard(is_first_move, is_tie_breaker, cells, rules),
    }


def list_moves(state, player_id):
    """Every playable move for the player, as move dicts ready for apply_move."""
    moves = []
    for card_index, card in enumerate(state["players"][player_id]["hand"]):
        if card is None:
            continue
        legal = get_legal_moves(state, player_id, card_index)
        for cell_index in legal["cells"]:
            moves.append({
                "player_id": player_id,
                "card_index": card_index,
                "destination": BOARD,
                "cell_index": cell_index,
            })
        if legal["can_discard"]:
            moves.append({
                "player_id": player_id,
                "card_index": card_index,
                "destination": DISCARD,
            })
    return moves
