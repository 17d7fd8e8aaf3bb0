"""
Abstract game engine interface.

The table server drives a game purely through these methods: it asks the
engine for the starting state, routes the human's actions through it, lets
the engine pick the computer opponent's action, and sends each seat its own
view of the result. All Techu rules live behind this boundary.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any


@dataclass
class ActionResult:
    """Returned by apply_action to tell the server what happened."""
    new_state: dict
    # Human-readable lines the server broadcasts as a game log
    log: list[str] = field(default_factory=list)
    # True once the action ended the game
    game_over: bool = False


class GameEngine(ABC):
    """
    Pure-logic game engine. No networking, no rendering — just rules.

    State is always a plain dict (JSON-serializable) so the server can
    store it, send it over the wire, and snapshot it for reconnection.
    """

    # Techu is strictly a two-seat game.
    player_count_range: tuple[int, int] = (2, 2)

    @abstractmethod
    def initial_state(self, player_ids: list[str], player_names: list[str]) -> dict:
        """
        Create the starting game state for the given players.
        Called once when a table starts, and again on reset.
        """
        ...

    @abstractmethod
    def get_player_view(self, state: dict, player_id: str) -> dict:
        """
        Return a redacted copy of the state for one seat: hidden deck order,
        face-down cards the seat does not own.
        """
        ...

    @abstractmethod
    def get_valid_actions(self, state: dict, player_id: str) -> list[dict]:
        """
        Return the actions this player can submit right now.
        Empty list means it is not their turn or the game is over.
        """
        ...

    @abstractmethod
    def apply_action(self, state: dict, player_id: str, action: dict) -> ActionResult:
        """
        Apply a player's action to the state and return the new state.
        Raises ValueError if the request cannot be routed (unknown player,
        wrong turn, unknown action kind, finished game).
        """
        ...

    @abstractmethod
    def choose_bot_action(self, state: dict, player_id: str, rng: Any = None) -> dict | None:
        """
        Pick an action for a computer-controlled seat, or None when that
        seat has nothing to do.
        """
        ...

    @abstractmethod
    def get_waiting_for(self, state: dict) -> list[str]:
        """
        Return list of player_ids who need to act before the game can proceed.
        """
        ...

    @abstractmethod
    def get_phase_info(self, state: dict) -> dict:
        """
        Return a summary of the current phase for display purposes.
        e.g. {"phase": "regular", "turn": 7, "description": "Alice: Play or discard a card"}
        """
        ...
