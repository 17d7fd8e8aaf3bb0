"""Random opponent for Techu.

Picks uniformly among the legal moves for the seat. There is no
evaluation or lookahead; it exists to give a human something to play
against and to drive whole-game tests.
"""

import random

from techu.rules.moves import list_moves


def choose_random_move(state, player_id, rng=None):
    """Return a random legal move dict for player_id, or None if there is none."""
    rng = rng or random
    if state["status"]["game_over"]:
        return None

    hand = state["players"][player_id]["hand"]
    if state["status"]["first_move"][player_id] and not state["status"]["tie_breaker"]:
        # Every card targets the same seed cell, so pick the card, not the move.
        filled = [i for i, card in enumerate(hand) if card is not None]
        if not filled:
            return None
        card_index = rng.choice(filled)
        moves = [m for m in list_moves(state, player_id) if m["card_index"] == card_index]
    else:
        moves = list_moves(state, player_id)

    if not moves:
        return None
    return rng.choice(moves)
