import random
from dataclasses import replace

import pytest

from duel.decisions import Decision, ProbePolicy, fallback_action, validate_decision
from engine.exceptions import IllegalAction, RaiseOutOfBounds
from engine.models import Action, ActionType, Seat

from .helpers import start_hand


def facing_blind():
    return start_hand().observation(Seat.SB)


def free_option():
    hand = start_hand()
    hand.apply_action(Action.call())
    return hand.observation(Seat.BB)


def test_decisions_are_case_insensitive():
    observation = facing_blind()
    assert validate_decision(Decision("CALL"), observation) == Action.call()
    assert validate_decision(Decision(" fold "), observation) == Action.fold()


def test_raise_bounds_are_inclusive():
    observation = facing_blind()
    assert validate_decision(Decision("raise", 200), observation) == Action.raise_to(200)
    assert validate_decision(Decision("raise", 10_000), observation) == Action.raise_to(10_000)
    for amount in (199, 10_001, None, True, 250.0, "300"):
        with pytest.raises(RaiseOutOfBounds):
            validate_decision(Decision("raise", amount), observation)


def test_unknown_or_illegal_actions_are_rejected():
    observation = facing_blind()
    with pytest.raises(IllegalAction, match="Unknown action"):
        validate_decision(Decision("bet", 300), observation)
    with pytest.raises(IllegalAction, match="legal set"):
        validate_decision(Decision("check"), observation)
    with pytest.raises(IllegalAction, match="only allowed with raise"):
        validate_decision(Decision("call", 50), observation)
    with pytest.raises(IllegalAction):
        validate_decision(Decision(None), observation)


def test_fallback_prefers_call_when_facing_a_bet():
    assert fallback_action(facing_blind()) == Action.call()


def test_fallback_prefers_check_when_free():
    assert fallback_action(free_option()) == Action.check()


def test_fallback_walks_down_the_ladder():
    observation = free_option()
    only_raise = replace(observation, legal=(ActionType.RAISE,))
    assert fallback_action(only_raise) == Action.raise_to(observation.min_raise_to)

    facing = facing_blind()
    assert fallback_action(replace(facing, legal=(ActionType.FOLD,))) == Action.fold()
    with pytest.raises(IllegalAction):
        fallback_action(replace(facing, legal=()))


def test_probe_swaps_check_and_min_raise():
    observation = free_option()
    always = ProbePolicy(1.0, random.Random(1))
    assert always.apply(Action.check(), observation) == Action.raise_to(200)
    assert always.apply(Action.raise_to(600), observation) == Action.check()


def test_probe_leaves_other_spots_alone():
    always = ProbePolicy(1.0, random.Random(1))
    assert always.apply(Action.call(), facing_blind()) == Action.call()
    assert always.apply(Action.raise_to(300), facing_blind()) == Action.raise_to(300)
    never = ProbePolicy(0.0)
    assert never.apply(Action.check(), free_option()) == Action.check()


def test_probe_is_deterministic_for_a_seed():
    observation = free_option()
    left = ProbePolicy(0.5, random.Random(7))
    right = ProbePolicy(0.5, random.Random(7))
    left_runs = [left.apply(Action.check(), observation) for _ in range(50)]
    right_runs = [right.apply(Action.check(), observation) for _ in range(50)]
    assert left_runs == right_runs
    assert {action.kind for action in left_runs} == {ActionType.CHECK, ActionType.RAISE}
