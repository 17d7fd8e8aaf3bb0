"""
Techu — game engine implementation.

The rules are a set of pure functions over a plain-dict state: every
transition deep-copies its input and returns a new state, so callers can
keep the old one. TechuEngine wraps them in the GameEngine interface for
the table server and is where turn ownership is checked.

Phase machine:
  first_move (both seed face down) → flip → tie_breaker (home-row seeds,
  flip again) ... → regular → game_over
"""

from copy import deepcopy

from techu.game_engine import GameEngine, ActionResult
from techu.rules.state import (
    PLAYERS, PLAYER_NAMES, BOARD_SIZE, create_initial_state, rules_of,
    push_card, top_card_of, other_player, rank_value, card_label,
)
from techu.rules.moves import BOARD, DISCARD, HAND, get_legal_moves, list_moves
from techu.rules.scoring import compute_final_scores
from techu.rules.bot import choose_random_move

FIRST_MOVE = "first_move"
FLIP = "flip"
TIE_BREAKER = "tie_breaker"
REGULAR = "regular"
GAME_OVER = "game_over"


# ── Setup / Queries ───────────────────────────────────────────────────

def initialize_game(rules=None, rng=None, board_size=BOARD_SIZE):
    """Fresh board, shuffled decks, three-card hands, Player 1 to seed first."""
    return create_initial_state(rules, rng, board_size)


def reset_game(state, rng=None):
    """Start over with the same rules and board size."""
    return create_initial_state(rules_of(state), rng, state["board_size"])


def is_game_over(state):
    return state["status"]["game_over"]


def hands_exhausted(players):
    return all(
        all(card is None for card in player["hand"]) and not player["deck"]
        for player in players.values()
    )


def get_phase(state):
    status = state["status"]
    if status["game_over"]:
        return GAME_OVER
    if all(status["pending"][p] is not None for p in PLAYERS):
        return FLIP
    if status["tie_breaker"]:
        return TIE_BREAKER
    if any(status["first_move"].values()):
        return FIRST_MOVE
    return REGULAR


# ── Move Application ─────────────────────────────────────────────────

def apply_move(state, move):
    """
    Apply {"player_id", "card_index", "destination", "cell_index"?,
    "hand_index"?} and return the new state. Never raises for a
    well-formed move; unusable moves leave the state as it was.
    """
    new_state, _ = play_move(state, move)
    return new_state


def play_move(state, move):
    """Like apply_move, but also returns the log lines describing what happened."""
    player_id = move.get("player_id")
    if player_id not in PLAYERS or state["status"]["game_over"]:
        return state, []

    destination = move.get("destination", BOARD)
    card_index = move.get("card_index")
    hand = state["players"][player_id]["hand"]
    name = _name(state, player_id)

    if destination == HAND:
        return _rearrange_hand(state, player_id, card_index, move.get("hand_index"))

    if not isinstance(card_index, int) or not 0 <= card_index < len(hand) or hand[card_index] is None:
        state = deepcopy(state)
        log = [f"{name} has no card in that slot and passes"]
        log += _end_turn(state, player_id)
        return state, log

    rules = rules_of(state)
    status = state["status"]

    if destination == DISCARD:
        if rules.enforce_legal_targets:
            allowed = get_legal_moves(state, player_id, card_index)["can_discard"]
        else:
            allowed = not (status["first_move"][player_id] or status["tie_breaker"])
        if not allowed:
            return state, []
        state = deepcopy(state)
        log = _do_discard(state, player_id, card_index)
        log += _end_turn(state, player_id)
        return state, log

    if destination != BOARD:
        return state, []

    cell_index = move.get("cell_index")
    if not isinstance(cell_index, int) or not 0 <= cell_index < len(state["board"]):
        return state, []
    if rules.enforce_legal_targets:
        if cell_index not in get_legal_moves(state, player_id, card_index)["cells"]:
            return state, []

    state = deepcopy(state)
    log = _do_place_card(state, player_id, card_index, cell_index)
    log += _end_turn(state, player_id)
    return state, log


def pass_turn(state, player_id):
    """Hand the turn to the other player without playing a card."""
    if player_id not in PLAYERS or state["status"]["game_over"]:
        return state, []
    state = deepcopy(state)
    log = [f"{_name(state, player_id)} cannot play and passes"]
    log += _end_turn(state, player_id)
    return state, log


def _do_place_card(state, player_id, card_index, cell_index):
    status = state["status"]
    player = state["players"][player_id]
    card = player["hand"][card_index]
    name = _name(state, player_id)

    if status["tie_breaker"]:
        placed = dict(card, face_down=False)
        status["pending"][player_id] = {"card": placed, "cell_index": cell_index}
        status["first_move"][player_id] = False
        log = [f"{name} plays {card_label(placed)} to the home row for the tie-break"]
    elif status["first_move"][player_id]:
        placed = dict(card, face_down=True)
        status["pending"][player_id] = {"card": placed, "cell_index": cell_index}
        status["first_move"][player_id] = False
        log = [f"{name} seeds a card face down"]
    else:
        placed = dict(card)
        covered = top_card_of(state["board"][cell_index])
        if covered is None:
            log = [f"{name} plays {card_label(placed)} to cell {cell_index}"]
        else:
            log = [f"{name} covers {card_label(covered)} with {card_label(placed)} at cell {cell_index}"]

    state["board"] = push_card(state["board"], cell_index, placed)
    _refill_slot(player, card_index)
    return log


def _do_discard(state, player_id, card_index):
    player = state["players"][player_id]
    card = player["hand"][card_index]
    state["discard"][player_id].append(dict(card, face_down=True))
    _refill_slot(player, card_index)
    return [f"{_name(state, player_id)} discards a card"]


def _rearrange_hand(state, player_id, card_index, hand_index):
    hand = state["players"][player_id]["hand"]
    for index in (card_index, hand_index):
        if not isinstance(index, int) or not 0 <= index < len(hand):
            return state, []
    if card_index == hand_index:
        return state, []
    state = deepcopy(state)
    hand = state["players"][player_id]["hand"]
    hand[card_index], hand[hand_index] = hand[hand_index], hand[card_index]
    return state, []


def _refill_slot(player, card_index):
    """Empty the slot, then draw from the end of the deck into it if possible."""
    player["hand"][card_index] = None
    if player["deck"]:
        player["hand"][card_index] = player["deck"].pop()


# ── Flip ─────────────────────────────────────────────────────────────

def apply_flip(state):
    """Reveal both pending seed cards and settle who moves first. No-op until both are down."""
    new_state, _ = resolve_flip(state)
    return new_state


def resolve_flip(state):
    status = state["status"]
    if status["game_over"]:
        return state, []
    if any(status["pending"][p] is None for p in PLAYERS):
        return state, []

    state = deepcopy(state)
    status = state["status"]
    pending = status["pending"]

    for player_id in PLAYERS:
        cell_index = pending[player_id]["cell_index"]
        cell = state["board"][cell_index]
        if cell:
            state["board"][cell_index] = cell[:-1] + [dict(cell[-1], face_down=False)]

    card1 = pending[PLAYERS[0]]["card"]
    card2 = pending[PLAYERS[1]]["card"]
    rank1 = rank_value(card1["rank"])
    rank2 = rank_value(card2["rank"])
    shown = f"{card_label(card1)} vs {card_label(card2)}"

    if rank1 == rank2:
        status["tie_breaker"] = True
        status["first_move"] = {p: True for p in PLAYERS}
        state["current_player"] = PLAYERS[0]
        log = [f"Flip: {shown}. Tie! Both players play again to their home row"]
    else:
        lower = PLAYERS[0] if rank1 < rank2 else PLAYERS[1]
        status["tie_breaker"] = False
        status["first_move"] = {p: False for p in PLAYERS}
        state["current_player"] = lower
        log = [f"Flip: {shown}. {_name(state, lower)} has the lower card and moves first"]

    status["pending"] = {p: None for p in PLAYERS}
    log += _check_game_over(state)
    return state, log


# ── Turn Helpers ─────────────────────────────────────────────────────

def _end_turn(state, player_id):
    """
    Pass the turn to the other player relative to whoever acted, not to
    whoever was recorded as current.
    """
    state["current_player"] = other_player(player_id)
    state["turn_number"] += 1
    return _check_game_over(state)


def _check_game_over(state):
    if not hands_exhausted(state["players"]):
        return []
    scoring = compute_final_scores(state)
    state["status"]["game_over"] = True
    state["scores"] = scoring["totals"]
    state["winner"] = scoring["winner"]

    totals = scoring["totals"]
    score_line = f"{totals[PLAYERS[0]]}-{totals[PLAYERS[1]]}"
    if scoring["winner"] is None:
        return [f"Game over! Tie at {score_line}"]
    return [f"Game over! {_name(state, scoring['winner'])} wins {score_line}"]


def _name(state, player_id):
    return state.get("player_names", {}).get(player_id) or PLAYER_NAMES[player_id]


class TechuEngine(GameEngine):

    player_count_range = (2, 2)

    def __init__(self, rules=None, rng=None):
        self.rules = rules
        self.rng = rng

    # ── Setup ─────────────────────────────────────────────────────────

    def initial_state(self, player_ids, player_names):
        if len(player_ids) != 2:
            raise ValueError("Techu requires exactly 2 players")
        state = initialize_game(self.rules, self.rng)
        state["player_ids"] = list(player_ids)
        state["player_names"] = dict(zip(PLAYERS, player_names))
        return state

    # ── Views ─────────────────────────────────────────────────────────

    def get_player_view(self, state, player_id):
        """Return state with deck order, opponent discards and opponent face-down cards hidden."""
        view = deepcopy(state)
        seat = self._seat(state, player_id)

        for p in PLAYERS:
            view["players"][p]["deck"] = len(view["players"][p]["deck"])
            if p != seat:
                view["discard"][p] = len(view["discard"][p])

        view["board"] = [
            [self._mask(card, seat) for card in cell] for cell in view["board"]
        ]
        for p, entry in view["status"]["pending"].items():
            if entry is not None and p != seat:
                entry["card"] = self._mask(entry["card"], seat)

        view["seat"] = seat
        view["phase"] = get_phase(state)
        return view

    def get_valid_actions(self, state, player_id):
        seat = self._seat(state, player_id)
        phase = get_phase(state)
        if phase == GAME_OVER:
            return []
        if phase == FLIP:
            return [{"kind": "flip"}]
        if state["current_player"] != seat:
            return []

        actions = []
        for move in list_moves(state, seat):
            if move["destination"] == BOARD:
                actions.append({
                    "kind": "play_card",
                    "card_index": move["card_index"],
                    "cell_index": move["cell_index"],
                })
            else:
                actions.append({"kind": "discard_card", "card_index": move["card_index"]})

        if not actions:
            actions.append({"kind": "pass"})

        # Slot swaps keep the turn
        hand_size = len(state["players"][seat]["hand"])
        for i in range(hand_size):
            for j in range(i + 1, hand_size):
                actions.append({"kind": "rearrange_hand", "card_index": i, "hand_index": j})
        return actions

    def get_waiting_for(self, state):
        phase = get_phase(state)
        if phase == GAME_OVER:
            return []
        if phase == FLIP:
            return list(state["player_ids"])
        return [self._player_id(state, state["current_player"])]

    def get_phase_info(self, state):
        phase = get_phase(state)
        current = _name(state, state["current_player"])

        desc_map = {
            FIRST_MOVE: f"{current}: Place a seed card face down",
            FLIP: "Revealing seed cards",
            TIE_BREAKER: f"{current}: Tie-break, play to your home row",
            REGULAR: f"{current}: Play or discard a card",
            GAME_OVER: "Game over",
        }

        return {
            "phase": phase,
            "turn": state["turn_number"],
            "current_player": current,
            "description": desc_map[phase],
        }

    # ── Action Dispatch ───────────────────────────────────────────────

    def apply_action(self, state, player_id, action):
        seat = self._seat(state, player_id)
        kind = action.get("kind")

        if kind == "reset":
            new_state = reset_game(state, self.rng)
            new_state["player_ids"] = list(state["player_ids"])
            new_state["player_names"] = dict(state.get("player_names", {}))
            return ActionResult(new_state=new_state, log=["New game started"], game_over=False)

        phase = get_phase(state)
        if phase == GAME_OVER:
            raise ValueError("Game is over")

        if kind == "flip":
            if phase != FLIP:
                raise ValueError("Both seed cards must be down before flipping")
            new_state, log = resolve_flip(state)
            return ActionResult(new_state=new_state, log=log, game_over=is_game_over(new_state))

        if phase == FLIP:
            raise ValueError("Seed cards must be flipped first")
        if state["current_player"] != seat:
            raise ValueError("Not your turn")

        if kind == "play_card":
            legal = get_legal_moves(state, seat, action.get("card_index"))
            has_card = self._has_card(state, seat, action.get("card_index"))
            if has_card and action.get("cell_index") not in legal["cells"]:
                raise ValueError(f"Invalid placement position: {action.get('cell_index')}")
            move = {
                "player_id": seat,
                "card_index": action.get("card_index"),
                "destination": BOARD,
                "cell_index": action.get("cell_index"),
            }
            new_state, log = play_move(state, move)

        elif kind == "discard_card":
            legal = get_legal_moves(state, seat, action.get("card_index"))
            if self._has_card(state, seat, action.get("card_index")) and not legal["can_discard"]:
                raise ValueError("Cannot discard now")
            move = {"player_id": seat, "card_index": action.get("card_index"), "destination": DISCARD}
            new_state, log = play_move(state, move)

        elif kind == "rearrange_hand":
            move = {
                "player_id": seat,
                "card_index": action.get("card_index"),
                "destination": HAND,
                "hand_index": action.get("hand_index"),
            }
            new_state, log = play_move(state, move)

        elif kind == "pass":
            if list_moves(state, seat):
                raise ValueError("Cannot pass while a move is available")
            new_state, log = pass_turn(state, seat)

        else:
            raise ValueError(f"Invalid action kind for {phase}: {kind}")

        return ActionResult(new_state=new_state, log=log, game_over=is_game_over(new_state))

    def choose_bot_action(self, state, player_id, rng=None):
        seat = self._seat(state, player_id)
        phase = get_phase(state)
        if phase == GAME_OVER:
            return None
        if phase == FLIP:
            return {"kind": "flip"}
        if state["current_player"] != seat:
            return None

        move = choose_random_move(state, seat, rng or self.rng)
        if move is None:
            return {"kind": "pass"}
        if move["destination"] == BOARD:
            return {"kind": "play_card", "card_index": move["card_index"], "cell_index": move["cell_index"]}
        return {"kind": "discard_card", "card_index": move["card_index"]}

    # ── Helpers ───────────────────────────────────────────────────────

    def _seat(self, state, player_id):
        try:
            return PLAYERS[state["player_ids"].index(player_id)]
        except ValueError:
            raise ValueError(f"Player {player_id} not in this game")

    def _player_id(self, state, seat):
        return state["player_ids"][PLAYERS.index(seat)]

    def _has_card(self, state, seat, card_index):
        hand = state["players"][seat]["hand"]
        return isinstance(card_index, int) and 0 <= card_index < len(hand) and hand[card_index] is not None

    def _mask(self, card, seat):
        if card["face_down"] and card["owner"] != seat:
            return {"face_down": True, "owner": card["owner"], "color": card["color"]}
        return card
