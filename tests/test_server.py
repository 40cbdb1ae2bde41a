import asyncio
import json

import pytest

from duel.orchestrator import DuelRunner, MatchStatus
from duel.server import ArenaServer, RemoteBot, envelope
from duel.store import MemoryStore
from engine.exceptions import DecisionFailed
from engine.models import Seat
from practice.bots import CallingStation
from sample_bot import ActionContext, choose_action, play, sanitize_action

from .helpers import DummyWebSocket, match_config, start_hand


def hello(team: str) -> str:
    return json.dumps({"type": "hello", "v": 1, "team": team})


def sent_types(ws: DummyWebSocket) -> list:
    return [json.loads(message)["type"] for message in ws.sent]


def error_codes(ws: DummyWebSocket) -> list:
    return [json.loads(message).get("code") for message in ws.sent if json.loads(message)["type"] == "error"]


class AnsweringSocket(DummyWebSocket):
    """Plays the remote side: answers every prompt with check or call."""

    def __init__(self) -> None:
        super().__init__()
        self.bot = None

    async def send(self, message: str) -> None:
        await super().send(message)
        body = json.loads(message)
        if body["type"] == "act":
            action = "check" if "check" in body["legal_actions"] else "call"
            reply = {"type": "action", "req_id": body["req_id"], "action": action}
            asyncio.get_running_loop().call_soon(self.bot.resolve, reply)


def test_envelope_carries_version_and_timestamp():
    body = json.loads(envelope("welcome", {"team": "alpha"}))
    assert body["type"] == "welcome"
    assert body["v"] == 1
    assert body["team"] == "alpha"
    assert "ts" in body


def test_remote_bot_prompt_and_answer():
    async def scenario():
        ws = DummyWebSocket()
        bot = RemoteBot("alpha", ws, 1_000)
        observation = start_hand().observation(Seat.SB)
        task = asyncio.ensure_future(bot.decide(observation))
        await asyncio.sleep(0)
        prompt = json.loads(ws.sent[-1])
        assert bot.resolve({"req_id": prompt["req_id"], "action": "raise", "amount": 300}) is None
        decision = await task
        stale = bot.resolve({"req_id": prompt["req_id"], "action": "call"})
        return prompt, decision, stale

    prompt, decision, stale = asyncio.run(scenario())
    assert prompt["type"] == "act"
    assert prompt["time_ms"] == 1_000
    assert prompt["legal_actions"] == ["fold", "call", "raise"]
    assert prompt["min_raise_to"] == 200
    assert decision.action == "raise"
    assert decision.amount == 300
    assert stale == "STALE_REQUEST"


def test_remote_bot_rejects_malformed_answers():
    async def scenario():
        bot = RemoteBot("alpha", DummyWebSocket(), 1_000)
        task = asyncio.ensure_future(bot.decide(start_hand().observation(Seat.SB)))
        await asyncio.sleep(0)
        req_id = next(iter(bot.pending))
        codes = [
            bot.resolve({"req_id": req_id}),
            bot.resolve({"req_id": 7, "action": "call"}),
        ]
        bot.disconnect()
        with pytest.raises(DecisionFailed):
            await task
        with pytest.raises(DecisionFailed):
            await bot.decide(start_hand().observation(Seat.SB))
        return codes

    assert asyncio.run(scenario()) == ["BAD_SCHEMA", "STALE_REQUEST"]


def test_hello_registers_the_bot_and_sends_welcome():
    server = ArenaServer(match_config(pairs=3), expected_bots=1)
    ws = DummyWebSocket([hello("alpha")])
    asyncio.run(server._handle_connection(ws))

    welcome = json.loads(ws.sent[0])
    assert welcome["type"] == "welcome"
    assert welcome["team"] == "alpha"
    assert welcome["config"]["pairs"] == 3
    assert welcome["config"]["sb"] == 50
    assert "alpha" in server.bots
    assert server.ready.is_set()
    # the socket ran dry, so the bot counts as gone
    assert not server.bots["alpha"].connected


def test_bad_hello_is_rejected():
    server = ArenaServer(match_config(), expected_bots=1)
    ws = DummyWebSocket([json.dumps({"type": "action"})])
    asyncio.run(server._handle_connection(ws))
    assert error_codes(ws) == ["BAD_HELLO"]
    assert ws.closed

    ws = DummyWebSocket([json.dumps({"type": "hello", "team": "   "})])
    asyncio.run(server._handle_connection(ws))
    assert error_codes(ws) == ["BAD_SCHEMA"]

    ws = DummyWebSocket(["not json"])
    asyncio.run(server._handle_connection(ws))
    assert error_codes(ws) == ["BAD_HELLO"]


def test_team_names_are_unique_ignoring_case():
    server = ArenaServer(match_config(), expected_bots=2, house={"alpha": CallingStation("alpha")})
    ws = DummyWebSocket([hello("ALPHA")])
    asyncio.run(server._handle_connection(ws))
    assert error_codes(ws) == ["TEAM_TAKEN"]
    assert server.bots == {}


def test_unknown_messages_and_stale_actions_get_errors():
    server = ArenaServer(match_config(), expected_bots=2)
    ws = DummyWebSocket(
        [
            hello("alpha"),
            json.dumps({"type": "ping"}),
            json.dumps({"type": "action", "req_id": "duel-1A-9", "action": "call"}),
        ]
    )
    asyncio.run(server._handle_connection(ws))
    assert sent_types(ws)[0] == "welcome"
    assert error_codes(ws) == ["UNKNOWN_TYPE", "STALE_REQUEST"]
    assert not server.ready.is_set()


def test_house_only_server_runs_a_duel_or_a_matrix():
    house = {name: CallingStation(name) for name in ("alpha", "bravo", "charlie")}
    duel = ArenaServer(match_config(pairs=1), "duel", expected_bots=0, house=house, store=MemoryStore())
    results = asyncio.run(duel.run_matches())
    assert len(results) == 1
    assert results[0].names == {"A": "alpha", "B": "bravo"}

    matrix = ArenaServer(match_config(pairs=1), "matrix", expected_bots=0, house=house, store=MemoryStore())
    assert len(asyncio.run(matrix.run_matches())) == 3

    lonely = ArenaServer(match_config(), expected_bots=0, house={"alpha": house["alpha"]})
    with pytest.raises(RuntimeError, match="two contestants"):
        asyncio.run(lonely.run_matches())


def test_remote_bot_plays_a_full_duel():
    ws = AnsweringSocket()
    remote = RemoteBot("alpha", ws, 1_000)
    ws.bot = remote
    runner = DuelRunner(remote, CallingStation("bravo"), match_config(pairs=2), MemoryStore())
    result = asyncio.run(runner.run_match())

    assert result.status is MatchStatus.COMPLETED
    assert result.banks == {"A": 10_000, "B": 10_000}
    types = sent_types(ws)
    assert types.count("act") == 2 * 2 * 4
    assert types.count("end_hand") == 4
    assert types[-1] == "match_end"
    assert runner.a.stats.fallbacks == 0


def test_sample_bot_strategy_stays_legal():
    observation = start_hand().observation(Seat.SB)
    message = {"req_id": "r-1", "time_ms": 1_000, **observation.to_payload()}
    ctx = ActionContext.from_message(message)
    assert ctx.to_call == 50
    assert ctx.bb == 100
    assert ctx.legal == ["fold", "call", "raise"]

    action, amount = sanitize_action(*choose_action(ctx), ctx)
    assert action in ctx.legal
    assert sanitize_action("raise", 50_000, ctx) == ("raise", 10_000)
    assert sanitize_action("raise", None, ctx) == ("raise", 200)
    assert sanitize_action("check", None, ctx) == ("fold", None)
    assert sanitize_action("call", 40, ctx) == ("call", None)


def test_sample_bot_keeps_playing_after_a_match_ends():
    payload = start_hand().observation(Seat.SB).to_payload()
    ws = DummyWebSocket(
        [
            envelope("act", {"req_id": "r-1", "time_ms": 1_000, **payload}),
            envelope("match_end", {"status": "completed", "banks": {"A": 10_000, "B": 10_000}}),
            envelope("act", {"req_id": "r-2", "time_ms": 1_000, **payload}),
            envelope("match_end", {"status": "completed", "banks": {"A": 10_000, "B": 10_000}}),
        ]
    )
    asyncio.run(play(ws, "alpha"))

    answers = [json.loads(message) for message in ws.sent]
    assert [answer["req_id"] for answer in answers] == ["r-1", "r-2"]
    assert all(answer["type"] == "action" for answer in answers)
