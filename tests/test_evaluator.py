"""Tests for branching_tales.evaluator."""

from branching_tales.evaluator import evaluate_choice, evaluate_choices
from branching_tales.models import Choice, UserProgress


def _progress(purchased: list[str] | None = None) -> UserProgress:
    return UserProgress(
        user_id="u", story_id="s", current_page_id="p1",
        purchased_choices=purchased or [],
    )


def _premium(cost: int, choice_id: str = "c1") -> Choice:
    return Choice(
        id=choice_id, from_page_id="p1", to_page_id="p2",
        text="Go", is_premium=True, cost=cost,
    )


FREE = Choice(id="free", from_page_id="p1", to_page_id="p2", text="Walk")


class TestEvaluateChoice:
    def test_affordable_premium_requires_purchase(self) -> None:
        ev = evaluate_choice(_premium(5), _progress(), balance=10)
        assert ev.accessible is True
        assert ev.requires_purchase is True
        assert ev.reason == "Costs 5 currency"

    def test_unaffordable_premium_is_locked(self) -> None:
        ev = evaluate_choice(_premium(15), _progress(), balance=10)
        assert ev.accessible is False
        assert ev.requires_purchase is True
        assert ev.reason == "Insufficient currency"

    def test_exact_balance_is_affordable(self) -> None:
        ev = evaluate_choice(_premium(10), _progress(), balance=10)
        assert ev.accessible is True

    def test_purchased_premium_is_free_at_zero_balance(self) -> None:
        ev = evaluate_choice(_premium(15), _progress(purchased=["c1"]), balance=0)
        assert ev.accessible is True
        assert ev.requires_purchase is False
        assert ev.reason == "Previously purchased"

    def test_free_choice_ignores_balance(self) -> None:
        for balance in (0, 10, 1000):
            ev = evaluate_choice(FREE, _progress(), balance=balance)
            assert ev.accessible is True
            assert ev.requires_purchase is False
            assert ev.reason is None

    def test_evaluation_carries_the_choice(self) -> None:
        choice = _premium(3)
        assert evaluate_choice(choice, _progress(), balance=0).choice == choice


class TestEvaluateChoices:
    def test_preserves_input_order(self) -> None:
        choices = [_premium(1, "b"), FREE, _premium(99, "a")]
        evs = evaluate_choices(choices, _progress(), balance=5)
        assert [e.choice.id for e in evs] == ["b", "free", "a"]
        assert [e.accessible for e in evs] == [True, True, False]

    def test_empty_page(self) -> None:
        assert evaluate_choices([], _progress(), balance=5) == []

    def test_does_not_mutate_progress(self) -> None:
        progress = _progress(purchased=["a"])
        evaluate_choices([_premium(1, "a"), _premium(1, "b")], progress, balance=5)
        assert progress.purchased_choices == ["a"]
