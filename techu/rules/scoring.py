"""
Techu scoring.

A cell scores for whoever's color is on top of it, no matter who put the
card there. Empty cells score for nobody.
"""

from techu.rules.state import PLAYERS, COLOR_OWNERS, top_card_of


def calculate_scores(board):
    """Count the cells topped by each color. Never modifies the board."""
    scores = {player_id: 0 for player_id in PLAYERS}
    for cell in board:
        top = top_card_of(cell)
        if top is None:
            continue
        owner = COLOR_OWNERS.get(top["color"])
        if owner is not None:
            scores[owner] += 1
    return scores


def determine_winner(scores):
    """Strictly higher score wins. Returns the winning player id, or None on a tie."""
    p1, p2 = (scores[player_id] for player_id in PLAYERS)
    if p1 > p2:
        return PLAYERS[0]
    if p2 > p1:
        return PLAYERS[1]
    return None


def get_scores(state):
    return calculate_scores(state["board"])


def compute_final_scores(state):
    """
    Final tally for the end-of-game summary.

    Returns {"totals": {player_id: n}, "winner": player_id | None}.
    """
    totals = get_scores(state)
    return {
        "totals": totals,
        "winner": determine_winner(totals),
    }
