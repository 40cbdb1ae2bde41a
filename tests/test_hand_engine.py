import logging
import random

import pytest

from engine import hand as hand_module
from engine.cards import build_deck
from engine.exceptions import ChipConservationViolation, EvalMismatch, IllegalAction, RaiseOutOfBounds
from engine.hand import HeadsUpHand
from engine.models import Action, ActionType, Seat, Street

from .helpers import check_down, create_table, perform_actions, stacked_deck, start_hand

SB_TRIPS_DECK = stacked_deck(["As", "Ad"], ["7c", "2d"], ["Ah", "Kd", "9s", "4c", "3h"])


def test_blinds_are_posted_and_small_blind_acts_first():
    hand = start_hand()
    assert hand.pot == 150
    assert hand.players[Seat.SB].stack == 9_950
    assert hand.players[Seat.BB].stack == 9_900
    assert hand.to_act is Seat.SB
    assert hand.pre_events[0] == {"ev": "POST_BLINDS", "sb": 50, "bb": 100}

    legal, to_call, min_raise_to, max_raise_to = hand.legal_actions(Seat.SB)
    assert legal == [ActionType.FOLD, ActionType.CALL, ActionType.RAISE]
    assert to_call == 50
    assert min_raise_to == 200
    assert max_raise_to == 10_000


def test_small_blind_fold_awards_the_blinds():
    hand = start_hand()
    events = hand.apply_action(Action.fold())

    assert events == [{"ev": "FOLD", "seat": "SB"}]
    result = hand.result
    assert hand.is_complete()
    assert result.winner is Seat.BB
    assert result.pot == 150
    assert result.deltas == {Seat.SB: -50, Seat.BB: 50}
    assert result.folded is Seat.SB
    assert not result.showdown
    assert hand.players[Seat.SB].stack == 9_950
    assert hand.players[Seat.BB].stack == 10_050


def test_limp_and_check_deals_the_flop_with_big_blind_first():
    hand = start_hand()
    hand.apply_action(Action.call())
    assert hand.to_act is Seat.BB
    legal, to_call, *_ = hand.legal_actions(Seat.BB)
    assert legal == [ActionType.CHECK, ActionType.RAISE]
    assert to_call == 0

    events = hand.apply_action(Action.check())
    assert events[-1]["ev"] == "FLOP"
    assert len(events[-1]["cards"]) == 3
    assert hand.street is Street.FLOP
    assert len(hand.board) == 3
    assert hand.current_bet == 0
    assert hand.pot == 200
    assert hand.to_act is Seat.BB


def test_raise_bounds_are_inclusive_and_track_the_last_increment():
    hand = start_hand()
    with pytest.raises(RaiseOutOfBounds):
        hand.apply_action(Action.raise_to(199))
    with pytest.raises(RaiseOutOfBounds):
        hand.apply_action(Action.raise_to(10_001))
    with pytest.raises(RaiseOutOfBounds):
        hand.apply_action(Action(ActionType.RAISE))

    hand.apply_action(Action.raise_to(200))
    assert hand.current_bet == 200
    assert hand.min_raise_increment == 100
    assert hand.legal_actions(Seat.BB)[2] == 300

    hand.apply_action(Action.raise_to(500))
    assert hand.min_raise_increment == 300
    legal, to_call, min_raise_to, max_raise_to = hand.legal_actions(Seat.SB)
    assert to_call == 300
    assert min_raise_to == 800
    assert max_raise_to == 10_000


def test_actions_outside_the_legal_set_are_rejected():
    hand = start_hand()
    with pytest.raises(IllegalAction):
        hand.apply_action(Action.check())
    hand.apply_action(Action.call())
    with pytest.raises(IllegalAction):
        hand.apply_action(Action.fold())
    with pytest.raises(IllegalAction):
        hand.apply_action(Action.call())


def test_shove_and_call_runs_the_board_out():
    hand = start_hand(deck=build_deck(seed=11))
    events = hand.apply_action(Action.raise_to(10_000))
    assert events[0]["all_in"] is True
    assert hand.players[Seat.SB].all_in

    legal, to_call, min_raise_to, max_raise_to = hand.legal_actions(Seat.BB)
    assert legal == [ActionType.FOLD, ActionType.CALL]
    assert to_call == 9_900
    assert (min_raise_to, max_raise_to) == (0, 0)

    events = hand.apply_action(Action.call())
    assert [ev["ev"] for ev in events] == ["CALL", "FLOP", "TURN", "RIVER", "SHOWDOWN"]
    assert hand.is_complete()
    assert len(hand.result.board) == 5
    assert hand.result.showdown
    assert sum(hand.result.deltas.values()) == 0
    assert sum(p.stack for p in hand.players.values()) == 20_000


def test_short_stack_can_only_call_and_the_excess_is_refunded():
    hand = start_hand(deck=SB_TRIPS_DECK, stacks={Seat.SB: 10_000, Seat.BB: 250})
    hand.apply_action(Action.raise_to(300))

    legal, to_call, *_ = hand.legal_actions(Seat.BB)
    assert legal == [ActionType.FOLD, ActionType.CALL]
    assert to_call == 200

    hand.apply_action(Action.call())
    assert hand.players[Seat.BB].all_in
    assert hand.is_complete()
    assert hand.result.winner is Seat.SB
    assert hand.result.deltas == {Seat.SB: 250, Seat.BB: -250}
    assert hand.players[Seat.SB].stack == 10_250
    assert hand.players[Seat.BB].stack == 0


def test_shove_below_a_full_raise_is_still_allowed():
    hand = start_hand(stacks={Seat.SB: 150, Seat.BB: 10_000})
    legal, _, min_raise_to, max_raise_to = hand.legal_actions(Seat.SB)
    assert ActionType.RAISE in legal
    assert min_raise_to == max_raise_to == 150

    hand.apply_action(Action.raise_to(150))
    assert hand.players[Seat.SB].all_in
    legal, to_call, *_ = hand.legal_actions(Seat.BB)
    assert legal == [ActionType.FOLD, ActionType.CALL]
    assert to_call == 50


def test_blind_that_covers_the_stack_ends_the_hand_without_decisions():
    hand = start_hand(stacks={Seat.SB: 40, Seat.BB: 10_000})
    assert hand.players[Seat.SB].all_in
    assert hand.is_complete()
    assert hand.to_act is None
    assert [ev["ev"] for ev in hand.pre_events][-1] == "SHOWDOWN"
    assert hand.result.pot == 140
    assert abs(hand.result.deltas[Seat.SB]) in (0, 40)
    assert sum(hand.result.deltas.values()) == 0


def test_all_in_big_blind_lets_the_small_blind_call_or_fold():
    hand = start_hand(stacks={Seat.SB: 10_000, Seat.BB: 60})
    assert hand.to_act is Seat.SB
    legal, to_call, *_ = hand.legal_actions(Seat.SB)
    assert legal == [ActionType.FOLD, ActionType.CALL]
    assert to_call == 10
    hand.apply_action(Action.call())
    assert hand.is_complete()
    assert len(hand.board) == 5


def test_street_cap_forces_the_pending_player_to_call(caplog):
    hand = start_hand(max_actions_per_street=2)
    hand.apply_action(Action.raise_to(200))
    with caplog.at_level(logging.WARNING, logger="hand_engine"):
        events = hand.apply_action(Action.raise_to(300))

    kinds = [ev["ev"] for ev in events]
    assert kinds[:3] == ["RAISE", "STREET_CAP", "CALL"]
    assert events[2]["forced"] is True
    assert events[2]["amount"] == 100
    assert events[2]["pot"] == 500
    assert events[2]["to_call"] == 100
    assert events[2]["current_bet"] == 300
    assert events[2]["stacks"] == {"SB": 9_800, "BB": 9_700}
    forced = hand.history[-1]
    assert forced.forced and forced.kind is ActionType.CALL and forced.seat is Seat.SB
    assert hand.street is Street.FLOP
    assert hand.pot == 600
    assert "action cap" in caplog.text


def test_split_pot_when_the_board_plays():
    deck = stacked_deck(["2c", "3d"], ["4c", "5d"], ["As", "Ks", "Qs", "Js", "Ts"])
    hand = start_hand(deck=deck)
    check_down(hand)
    result = hand.result
    assert result.winner is None
    assert result.deltas == {Seat.SB: 0, Seat.BB: 0}
    assert result.ranks == {Seat.SB: "straight_flush", Seat.BB: "straight_flush"}


def test_showdown_pays_the_best_hand():
    hand = start_hand(deck=SB_TRIPS_DECK)
    perform_actions(hand, [Action.call(), Action.check()])
    check_down(hand)
    result = hand.result
    assert result.showdown
    assert result.winner is Seat.SB
    assert result.pot == 200
    assert result.deltas == {Seat.SB: 100, Seat.BB: -100}
    assert result.ranks == {Seat.SB: "three_of_a_kind", Seat.BB: "high_card"}
    assert result.board == ["Ah", "Kd", "9s", "4c", "3h"]


def test_evaluator_disagreement_is_an_engine_defect(monkeypatch, caplog):
    monkeypatch.setattr(hand_module, "hand_score", lambda cards: 0)
    hand = start_hand(deck=SB_TRIPS_DECK)
    with caplog.at_level(logging.ERROR, logger="hand_engine"):
        with pytest.raises(EvalMismatch):
            check_down(hand)
    assert "showdown disagreement" in caplog.text


def test_chip_leak_is_detected_on_the_next_action():
    hand = start_hand()
    hand.players[Seat.SB].stack += 1
    with pytest.raises(ChipConservationViolation):
        hand.apply_action(Action.call())


def test_completed_hand_rejects_more_actions():
    hand = start_hand()
    hand.apply_action(Action.fold())
    with pytest.raises(RuntimeError, match="not in progress"):
        hand.apply_action(Action.check())


def test_observation_payload_shape():
    hand = start_hand(deck=SB_TRIPS_DECK)
    observation = hand.observation(Seat.SB)
    payload = observation.to_payload()
    assert payload["hole_cards"] == ["As", "Ad"]
    assert payload["board"] == []
    assert payload["stacks"] == {"hero": 9_950, "villain": 9_900}
    assert payload["blinds"] == {"sb": 50, "bb": 100, "ante": 0}
    assert payload["legal_actions"] == ["fold", "call", "raise"]
    assert payload["to_call"] == 50
    assert payload["pot"] == 150
    assert payload["street"] == "preflop"


def test_random_play_keeps_legal_sets_consistent_and_conserves_chips():
    rng = random.Random(2024)
    for seed in range(200):
        hand = HeadsUpHand(f"random-{seed}", create_table(), build_deck(seed))
        while not hand.is_complete():
            seat = hand.to_act
            player = hand.players[seat]
            legal, to_call, min_raise_to, max_raise_to = hand.legal_actions(seat)
            if to_call == 0:
                assert ActionType.CHECK in legal
                assert ActionType.FOLD not in legal and ActionType.CALL not in legal
            else:
                assert ActionType.FOLD in legal and ActionType.CALL in legal
                assert ActionType.CHECK not in legal
            if ActionType.RAISE in legal:
                assert min_raise_to <= max_raise_to == player.committed + player.stack
            kind = rng.choice(legal)
            if kind is ActionType.RAISE:
                hand.apply_action(Action.raise_to(rng.randint(min_raise_to, max_raise_to)))
            else:
                hand.apply_action(Action(kind))
        assert sum(hand.result.deltas.values()) == 0
        assert sum(p.stack for p in hand.players.values()) == 20_000


def test_category_disagreement_is_an_engine_defect(monkeypatch, caplog):
    real_score = hand_module.hand_score
    # Same ordering, shifted one category up.
    monkeypatch.setattr(hand_module, "hand_score", lambda cards: real_score(cards) + (1 << 20))
    hand = start_hand(deck=SB_TRIPS_DECK)
    with caplog.at_level(logging.ERROR, logger="hand_engine"):
        with pytest.raises(EvalMismatch, match="category"):
            check_down(hand)
    assert "category disagreement" in caplog.text
