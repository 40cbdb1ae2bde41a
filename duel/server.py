from __future__ import annotations

import asyncio
import json
import logging
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, List, Optional

import websockets

from engine.exceptions import DecisionFailed
from engine.models import Observation

from .config import MatchConfig
from .decisions import Decision, DecisionSource
from .orchestrator import DuelRunner, MatchResult, run_round_robin
from .stop import StopToken
from .store import MatchStore

if TYPE_CHECKING:
    from websockets.server import WebSocketServerProtocol

LOGGER = logging.getLogger("duel_host")

# ArenaServer lets bots play duels over WebSockets. The duel runner never sees
# a socket: each connected bot is wrapped in a RemoteBot decision source.


def envelope(msg_type: str, payload: Dict[str, object]) -> str:
    body: Dict[str, object] = {"type": msg_type, "v": 1, "ts": datetime.now(timezone.utc).isoformat()}
    body.update(payload)
    return json.dumps(body)


class RemoteBot(DecisionSource):
    """Decision source backed by one websocket connection."""

    def __init__(self, name: str, websocket: WebSocketServerProtocol, move_time_ms: int) -> None:
        self.name = name
        self.websocket = websocket
        self.move_time_ms = move_time_ms
        self.pending: Dict[str, asyncio.Future] = {}
        self.connected = True
        self._counter = 0

    async def decide(self, observation: Observation) -> Decision:
        if not self.connected:
            raise DecisionFailed(f"{self.name} is disconnected")
        self._counter += 1
        req_id = f"{observation.hand_id}-{self._counter}"
        future = asyncio.get_running_loop().create_future()
        self.pending[req_id] = future
        payload = {"req_id": req_id, "time_ms": self.move_time_ms}
        payload.update(observation.to_payload())
        try:
            await self.websocket.send(envelope("act", payload))
        except websockets.ConnectionClosed as exc:
            self.pending.pop(req_id, None)
            self.connected = False
            raise DecisionFailed(f"{self.name} disconnected before acting") from exc
        try:
            return await future
        finally:
            self.pending.pop(req_id, None)

    def resolve(self, message: Dict[str, object]) -> Optional[str]:
        """Complete the matching request. Returns an error code on failure."""
        req_id = message.get("req_id")
        future = self.pending.get(req_id) if isinstance(req_id, str) else None
        if future is None or future.done():
            return "STALE_REQUEST"
        action = message.get("action")
        if not isinstance(action, str):
            return "BAD_SCHEMA"
        future.set_result(Decision(action=action, amount=message.get("amount")))
        return None

    def disconnect(self) -> None:
        self.connected = False
        for future in self.pending.values():
            if not future.done():
                future.set_exception(DecisionFailed(f"{self.name} disconnected"))

    async def notify(self, msg_type: str, payload: Dict[str, object]) -> None:
        if not self.connected:
            return
        try:
            await self.websocket.send(envelope(msg_type, payload))
        except websockets.ConnectionClosed:
            LOGGER.info("Bot %s went away while sending %s", self.name, msg_type)
            self.connected = False


class ArenaServer:
    def __init__(
        self,
        config: MatchConfig,
        mode: str = "duel",
        expected_bots: int = 2,
        house: Optional[Dict[str, DecisionSource]] = None,
        store: Optional[MatchStore] = None,
        token: Optional[StopToken] = None,
    ) -> None:
        self.config = config
        self.mode = mode
        self.expected_bots = expected_bots
        self.house = dict(house or {})
        self.store = store
        self.token = token or StopToken(config.stop)
        self.bots: Dict[str, RemoteBot] = {}
        self.lock = asyncio.Lock()
        self.ready = asyncio.Event()
        if expected_bots <= 0:
            self.ready.set()

    async def start(self, host: str = "0.0.0.0", port: int = 8765) -> List[MatchResult]:
        async with websockets.serve(self._handle_connection, host, port):
            LOGGER.info("Duel host listening on %s:%s (waiting for %d bots)", host, port, self.expected_bots)
            await self.ready.wait()
            results = await self.run_matches()
        return results

    async def run_matches(self) -> List[MatchResult]:
        sources: Dict[str, DecisionSource] = dict(self.house)
        sources.update(self.bots)
        if len(sources) < 2:
            raise RuntimeError("At least two contestants are required")
        if self.mode == "matrix":
            return await run_round_robin(sources, self.config, self.store, self.token)
        (name_a, source_a), (name_b, source_b) = list(sources.items())[:2]
        runner = DuelRunner(source_a, source_b, self.config, self.store, self.token, name_a, name_b)
        return [await runner.run_match()]

    async def _handle_connection(self, websocket: WebSocketServerProtocol) -> None:
        hello = await self._read_message(websocket)
        if hello is None or hello.get("type") != "hello":
            await self._send_error(websocket, code="BAD_HELLO", msg="Expected hello")
            await websocket.close()
            return
        team_raw = hello.get("team")
        team = team_raw.strip() if isinstance(team_raw, str) else ""
        if not team:
            await self._send_error(websocket, code="BAD_SCHEMA", msg="team required")
            await websocket.close()
            return

        async with self.lock:
            taken = team.casefold() in {name.casefold() for name in list(self.bots) + list(self.house)}
            if taken or self.ready.is_set():
                bot = None
            else:
                bot = RemoteBot(team, websocket, self.config.table.move_time_ms)
                self.bots[team] = bot
        if bot is None:
            await self._send_error(websocket, code="TEAM_TAKEN", msg="Name in use or duel already full")
            await websocket.close()
            return

        table = self.config.table
        await websocket.send(
            envelope(
                "welcome",
                {
                    "team": team,
                    "config": {
                        "variant": table.variant,
                        "starting_stack": table.starting_stack,
                        "sb": table.sb,
                        "bb": table.bb,
                        "move_time_ms": table.move_time_ms,
                        "pairs": self.config.pairs,
                    },
                },
            )
        )
        LOGGER.info("Bot %s connected (%d/%d)", team, len(self.bots), self.expected_bots)
        if len(self.bots) >= self.expected_bots:
            self.ready.set()

        try:
            async for raw in websocket:
                message = self._decode(raw)
                if message.get("type") == "action":
                    error = bot.resolve(message)
                    if error:
                        await self._send_error(websocket, code=error, msg="Action rejected")
                else:
                    await self._send_error(websocket, code="UNKNOWN_TYPE", msg="Unsupported message type")
        except websockets.ConnectionClosed:
            pass
        finally:
            bot.disconnect()
        LOGGER.info("Bot %s disconnected", team)

    async def _send_error(self, websocket: WebSocketServerProtocol, code: str, msg: str) -> None:
        try:
            await websocket.send(envelope("error", {"code": code, "msg": msg}))
        except websockets.ConnectionClosed:
            LOGGER.debug("Could not deliver %s error; socket closed", code)

    async def _read_message(self, websocket: WebSocketServerProtocol) -> Optional[Dict[str, object]]:
        try:
            raw = await asyncio.wait_for(websocket.recv(), timeout=5)
        except (asyncio.TimeoutError, websockets.ConnectionClosed):
            return None
        message = self._decode(raw)
        return message or None

    def _decode(self, raw) -> Dict[str, object]:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            return {}
        return message if isinstance(message, dict) else {}
