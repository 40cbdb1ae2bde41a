#!/usr/bin/env python3
"""
Starter bot for the heads-up duel host.

Usage:
    pip install websockets
    python sample_bot.py --team TEAM_NAME --url ws://127.0.0.1:8765

This script shows the core loop:
  * handshake with the host (`hello` -> `welcome`)
  * wait for `act` prompts
  * choose an action based on the observation
  * answer with the prompt's `req_id`

Each `act` prompt carries:
  * hole_cards / board, e.g. ["Ah", "Kd"]
  * stacks {"hero", "villain"}, blinds {"sb", "bb", "ante"}, pot, to_call
  * legal_actions (lowercase: fold, check, call, raise)
  * min_raise_to / max_raise_to (absolute raise-to amounts)

Replace `choose_action` with your own strategy. Anything illegal or late is
replaced by the host's fallback action.
"""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

import websockets

LOGGER = logging.getLogger("sample_bot")
STREAM_HANDLER = logging.StreamHandler()
STREAM_HANDLER.setFormatter(logging.Formatter("%(message)s"))
if not LOGGER.handlers:
    LOGGER.addHandler(STREAM_HANDLER)
LOGGER.propagate = False


@dataclass
class ActionContext:
    hand_id: str
    req_id: str
    seat: str  # "SB" or "BB"
    street: str

    hole_cards: list[str]
    board: list[str]
    stack: int
    villain_stack: int
    pot: int
    to_call: int
    sb: int
    bb: int

    legal: list[str]
    min_raise_to: int
    max_raise_to: int
    time_ms: int

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "ActionContext":
        stacks = message.get("stacks", {})
        blinds = message.get("blinds", {})
        return cls(
            hand_id=message["hand_id"],
            req_id=message["req_id"],
            seat=message.get("seat", "SB"),
            street=message.get("street", "preflop"),
            hole_cards=list(message.get("hole_cards", [])),
            board=list(message.get("board", [])),
            stack=stacks.get("hero", 0),
            villain_stack=stacks.get("villain", 0),
            pot=message.get("pot", 0),
            to_call=message.get("to_call", 0),
            sb=blinds.get("sb", 0),
            bb=blinds.get("bb", 0),
            legal=list(message.get("legal_actions", [])),
            min_raise_to=message.get("min_raise_to", 0),
            max_raise_to=message.get("max_raise_to", 0),
            time_ms=message.get("time_ms", 0),
        )


def choose_action(ctx: ActionContext) -> Tuple[str, Optional[int]]:
    """Training wheels strategy: check, call small bets, raise pairs, fold the rest."""

    paired = len(ctx.hole_cards) == 2 and ctx.hole_cards[0][0] == ctx.hole_cards[1][0]
    if paired and "raise" in ctx.legal:
        return "raise", ctx.min_raise_to
    if "check" in ctx.legal:
        return "check", None
    if "call" in ctx.legal and ctx.to_call <= 2 * ctx.bb:
        return "call", None
    return "fold", None


def sanitize_action(action: str, amount: Optional[int], ctx: ActionContext) -> Tuple[str, Optional[int]]:
    """Keep the outgoing action inside the host's constraints."""

    if action not in ctx.legal:
        LOGGER.warning("Illegal action '%s' requested; falling back", action)
        return ("check", None) if "check" in ctx.legal else ("fold", None)
    if action != "raise":
        return action, None
    if amount is None:
        amount = ctx.min_raise_to
    return action, max(ctx.min_raise_to, min(int(amount), ctx.max_raise_to))


async def play(websocket, team_name: str) -> None:
    """Answer host messages until the host closes the connection.

    In matrix mode the same connection plays several duels, so a match_end
    only closes the current one.
    """

    matches = 0
    async for raw in websocket:
        message = json.loads(raw)
        msg_type = message.get("type")

        if msg_type == "welcome":
            cfg = message.get("config", {})
            LOGGER.info(
                "[welcome] %s | sb=%s bb=%s stack=%s pairs=%s",
                team_name,
                cfg.get("sb"),
                cfg.get("bb"),
                cfg.get("starting_stack"),
                cfg.get("pairs"),
            )
        elif msg_type == "start_hand":
            LOGGER.info("[hand %s] start as %s", message.get("hand_id"), message.get("seat"))
        elif msg_type == "act":
            ctx = ActionContext.from_message(message)
            action, amount = sanitize_action(*choose_action(ctx), ctx)
            payload: Dict[str, Any] = {"type": "action", "v": 1, "req_id": ctx.req_id, "action": action}
            if amount is not None:
                payload["amount"] = amount
            LOGGER.debug("Sending action: %s", payload)
            await websocket.send(json.dumps(payload))
        elif msg_type == "end_hand":
            LOGGER.info(
                "[hand %s] end | winner=%s delta=%+d board=%s",
                message.get("hand_id"),
                message.get("winner"),
                message.get("delta", 0),
                " ".join(message.get("board", [])) or "--",
            )
        elif msg_type == "match_end":
            matches += 1
            LOGGER.info("[match %d] %s banks=%s", matches, message.get("status"), message.get("banks"))
        elif msg_type == "error":
            LOGGER.warning("[error] %s", message)
        else:
            LOGGER.debug("Ignoring message type=%s", msg_type)


async def run_bot(team: str, url: str) -> None:
    async with websockets.connect(url) as ws:
        await ws.send(json.dumps({"type": "hello", "v": 1, "team": team}))
        LOGGER.info("[connect] %s as %s", url, team)
        try:
            await play(ws, team)
        except websockets.ConnectionClosed as exc:
            LOGGER.info("[disconnect] host closed the connection: %s", exc)


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Sample duel bot client")
    parser.add_argument("--team", required=True, help="Team name to register with the host")
    parser.add_argument("--url", default="ws://127.0.0.1:8765", help="WebSocket URL")
    parser.add_argument("--log-level", default="INFO")
    return parser.parse_args()


def main() -> None:
    args = parse_args()
    LOGGER.setLevel(getattr(logging, args.log_level.upper(), logging.INFO))
    asyncio.run(run_bot(args.team, args.url))


if __name__ == "__main__":
    main()
