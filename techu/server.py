"""
WebSocket table server for Techu.

Each table seats one human against the random opponent. The server is the
caller the rules engine expects: it checks turn ownership (through the
engine adapter), flips the seed cards once both are down, and paces the
opponent's moves with a short delay so a client can animate them.
"""

import argparse
import asyncio
import json
import random
import secrets
import time
from dataclasses import dataclass, field

import websockets

from techu.game_engine import GameEngine
from techu.rules.engine import TechuEngine

BOT_NAME = "Computer"
DEFAULT_BOT_DELAY = 0.8
TABLE_MAX_AGE = 6 * 60 * 60  # seconds before an unattended table is dropped


def generate_table_code():
    """Generate a short, human-friendly table code."""
    chars = "ABCDEFGHJKLMNPQRSTUVWXYZ23456789"  # no I/O/0/1 for clarity
    return "".join(secrets.choice(chars) for _ in range(5))


def generate_token():
    return secrets.token_urlsafe(24)


@dataclass
class Player:
    player_id: str
    name: str
    token: str | None
    websocket: object = None
    connected: bool = False
    is_bot: bool = False


@dataclass
class Table:
    code: str
    host_id: str
    bot_id: str
    engine: GameEngine
    players: dict = field(default_factory=dict)       # player_id -> Player
    game_state: dict = None
    created_at: float = field(default_factory=time.time)
    lock: asyncio.Lock = field(default_factory=asyncio.Lock)  # held while game_state changes

    @property
    def has_connected_humans(self):
        return any(p.connected for p in self.players.values() if not p.is_bot)

    @property
    def player_list(self):
        return [
            {"player_id": p.player_id, "name": p.name, "connected": p.connected, "is_bot": p.is_bot}
            for p in self.players.values()
        ]


class GameServer:
    """
    Manages tables, player connections, and message routing.
    All rule decisions are delegated to the engine.
    """

    def __init__(self, engine_factory=TechuEngine, bot_delay=DEFAULT_BOT_DELAY, rng=None,
                 table_max_age=TABLE_MAX_AGE):
        self.engine_factory = engine_factory
        self.bot_delay = bot_delay
        self.rng = rng or random.Random()
        self.table_max_age = table_max_age
        self.tables: dict[str, Table] = {}              # code -> Table
        self.tokens: dict[str, tuple[str, str]] = {}    # token -> (table_code, player_id)

    # ── Table Management ─────────────────────────────────────────────

    def prune_tables(self, now=None):
        """Drop tables older than table_max_age that nobody is connected to."""
        now = time.time() if now is None else now
        stale = [
            code for code, table in self.tables.items()
            if now - table.created_at > self.table_max_age and not table.has_connected_humans
        ]
        for code in stale:
            del self.tables[code]
        self.tokens = {
            token: seat for token, seat in self.tokens.items() if seat[0] in self.tables
        }
        return stale

    def create_table(self, name):
        """Seat a human as Player 1 against the computer and deal a new game."""
        self.prune_tables()
        code = generate_table_code()
        while code in self.tables:
            code = generate_table_code()

        engine = self.engine_factory()
        player_id = f"p_{generate_token()[:8]}"
        bot_id = f"bot_{generate_token()[:8]}"
        token = generate_token()

        table = Table(code=code, host_id=player_id, bot_id=bot_id, engine=engine)
        table.players[player_id] = Player(player_id=player_id, name=name, token=token)
        table.players[bot_id] = Player(player_id=bot_id, name=BOT_NAME, token=None, connected=True, is_bot=True)
        table.game_state = engine.initial_state([player_id, bot_id], [name, BOT_NAME])

        self.tables[code] = table
        self.tokens[token] = (code, player_id)

        return code, player_id, token

    def reset_table(self, code, requester_id):
        table = self.tables.get(code)
        if table is None:
            raise ValueError("Table not found")
        if table.host_id != requester_id:
            raise ValueError("Only the seated player can reset the game")
        result = table.engine.apply_action(table.game_state, requester_id, {"kind": "reset"})
        table.game_state = result.new_state
        return result

    # ── WebSocket Handler ────────────────────────────────────────────

    async def handle_connection(self, websocket):
        """Main handler for a single WebSocket connection."""
        table_code = None
        player_id = None

        try:
            async for raw in websocket:
                try:
                    msg = json.loads(raw)
                except json.JSONDecodeError:
                    await self._send(websocket, {"type": "error", "message": "Invalid JSON"})
                    continue

                msg_type = msg.get("type")

                # ── Pre-auth messages ────────────────────────────
                if msg_type == "create":
                    result = await self._handle_create(websocket, msg)
                    if result:
                        table_code, player_id = result
                    continue

                if msg_type in ("auth", "reconnect"):
                    result = await self._handle_auth(websocket, msg)
                    if result:
                        table_code, player_id = result
                    continue

                # ── Authenticated messages ───────────────────────
                if not table_code or not player_id:
                    await self._send(websocket, {"type": "error", "message": "Not authenticated. Send 'auth' first."})
                    continue

                table = self.tables.get(table_code)
                if not table:
                    await self._send(websocket, {"type": "error", "message": "Table no longer exists"})
                    continue

                if msg_type == "action":
                    await self._handle_action(table, player_id, msg.get("action", {}))

                elif msg_type == "reset":
                    await self._handle_reset(table, player_id)

                elif msg_type == "get_state":
                    await self._send_game_state(table, player_id)

                else:
                    await self._send(websocket, {"type": "error", "message": f"Unknown message type: {msg_type}"})

        except websockets.ConnectionClosed:
            pass
        finally:
            if table_code and player_id:
                table = self.tables.get(table_code)
                if table and player_id in table.players:
                    table.players[player_id].connected = False
                    table.players[player_id].websocket = None

    # ── Message Handlers ─────────────────────────────────────────────

    async def _handle_create(self, websocket, msg):
        name = msg.get("name") or "Player"
        code, player_id, token = self.create_table(name)
        table = self.tables[code]
        player = table.players[player_id]
        player.websocket = websocket
        player.connected = True

        await self._send(websocket, {
            "type": "created",
            "table_code": code,
            "player_id": player_id,
            "token": token,
            "game": "techu",
        })
        await self._send_game_state(table, player_id)
        return code, player_id

    async def _handle_auth(self, websocket, msg):
        """Authenticate with a token and bind this websocket to its table seat."""
        token = msg.get("token")
        if not token or token not in self.tokens:
            await self._send(websocket, {"type": "error", "message": "Invalid token"})
            return None

        table_code, player_id = self.tokens[token]
        table = self.tables.get(table_code)
        if not table or player_id not in table.players:
            await self._send(websocket, {"type": "error", "message": "Table or player not found"})
            return None

        player = table.players[player_id]
        player.websocket = websocket
        player.connected = True

        await self._send(websocket, {
            "type": "authenticated",
            "table_code": table_code,
            "player_id": player_id,
            "name": player.name,
            "players": table.player_list,
        })
        await self._send_game_state(table, player_id)

        return table_code, player_id

    async def _handle_action(self, table, player_id, action):
        async with table.lock:
            try:
                result = table.engine.apply_action(table.game_state, player_id, action)
            except ValueError as e:
                player = table.players.get(player_id)
                if player and player.websocket:
                    await self._send(player.websocket, {"type": "action_error", "message": str(e)})
                return
            await self._publish(table, result)

        await self._run_automatic_turns(table)

    async def _handle_reset(self, table, player_id):
        async with table.lock:
            try:
                result = self.reset_table(table.code, player_id)
            except ValueError as e:
                player = table.players.get(player_id)
                if player and player.websocket:
                    await self._send(player.websocket, {"type": "error", "message": str(e)})
                return
            await self._broadcast(table, {"type": "game_log", "messages": result.log})
            await self._broadcast_game_state(table)

    def _bot_holds_turn(self, table):
        engine = table.engine
        state = table.game_state
        if engine.get_phase_info(state)["phase"] in ("game_over", "flip"):
            return False
        return table.bot_id in engine.get_waiting_for(state)

    async def _run_automatic_turns(self, table):
        """Flip pending seed cards and let the computer play until the human is up."""
        engine = table.engine
        while True:
            async with table.lock:
                phase = engine.get_phase_info(table.game_state)["phase"]
                if phase == "flip":
                    result = engine.apply_action(table.game_state, table.host_id, {"kind": "flip"})
                    await self._publish(table, result)
                    continue
                if not self._bot_holds_turn(table):
                    return

            if self.bot_delay:
                await asyncio.sleep(self.bot_delay)

            # The table may have been reset or moved on during the delay
            async with table.lock:
                if not self._bot_holds_turn(table):
                    continue
                action = engine.choose_bot_action(table.game_state, table.bot_id, self.rng)
                if action is None:
                    return
                result = engine.apply_action(table.game_state, table.bot_id, action)
                await self._publish(table, result)

    async def _publish(self, table, result):
        table.game_state = result.new_state

        if result.log:
            await self._broadcast(table, {
                "type": "game_log",
                "messages": result.log,
            })

        await self._broadcast_game_state(table)

        if result.game_over:
            await self._broadcast(table, {
                "type": "game_over",
                "scores": table.game_state["scores"],
                "winner": table.game_state["winner"],
            })

    # ── Broadcasting ─────────────────────────────────────────────────

    async def _send(self, websocket, data):
        try:
            await websocket.send(json.dumps(data))
        except websockets.ConnectionClosed:
            pass

    async def _broadcast(self, table, data):
        """Send the same message to every connected human at the table."""
        for player in table.players.values():
            if player.connected and player.websocket:
                await self._send(player.websocket, data)

    async def _send_game_state(self, table, player_id):
        """Send personalized game view to one player."""
        player = table.players.get(player_id)
        if not player or not player.websocket or not table.game_state:
            return

        engine = table.engine
        view = engine.get_player_view(table.game_state, player_id)
        waiting_for = engine.get_waiting_for(table.game_state)

        await self._send(player.websocket, {
            "type": "game_state",
            "state": view,
            "phase_info": engine.get_phase_info(table.game_state),
            "waiting_for": waiting_for,
            "valid_actions": engine.get_valid_actions(table.game_state, player_id),
            "your_turn": player_id in waiting_for,
        })

    async def _broadcast_game_state(self, table):
        for player_id, player in table.players.items():
            if not player.is_bot:
                await self._send_game_state(table, player_id)


# ── Server Entry Point ───────────────────────────────────────────────

async def run_server(host="0.0.0.0", port=8765, bot_delay=DEFAULT_BOT_DELAY):
    server = GameServer(bot_delay=bot_delay)

    print(f"Techu server starting on ws://{host}:{port}")
    print(f"Computer move delay: {bot_delay}s")

    async with websockets.serve(server.handle_connection, host, port):
        print("Server running. Ctrl+C to stop.")
        await asyncio.Future()  # run forever


def main():
    parser = argparse.ArgumentParser(description="Techu WebSocket table server")
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind")
    parser.add_argument("--port", type=int, default=8765, help="Port to listen on")
    parser.add_argument("--bot-delay", type=float, default=DEFAULT_BOT_DELAY,
                        help="Seconds to wait before the computer moves")
    args = parser.parse_args()
    asyncio.run(run_server(args.host, args.port, args.bot_delay))


if __name__ == "__main__":
    main()
