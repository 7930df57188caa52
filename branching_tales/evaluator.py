"""Choice evaluation — which outgoing edges can this reader take right now.

Pure functions with no I/O. Results depend on the reader's balance and
purchases at the moment of the call, so they are recomputed for every
session and never cached.
"""

from __future__ import annotations

from branching_tales.models import Choice, ChoiceEvaluation, UserProgress

CURRENCY_NAME = "currency"


def evaluate_choice(
    choice: Choice, progress: UserProgress, balance: int
) -> ChoiceEvaluation:
    if not choice.is_premium:
        return ChoiceEvaluation(choice=choice, accessible=True, requires_purchase=False)

    # Owned edges are free forever; the cost is not re-checked.
    if choice.id in progress.purchased_choices:
        return ChoiceEvaluation(
            choice=choice,
            accessible=True,
            requires_purchase=False,
            reason="Previously purchased",
        )

    can_afford = balance >= choice.cost
    return ChoiceEvaluation(
        choice=choice,
        accessible=can_afford,
        requires_purchase=True,
        reason=(
            f"Costs {choice.cost} {CURRENCY_NAME}"
            if can_afford
            else f"Insufficient {CURRENCY_NAME}"
        ),
    )


def evaluate_choices(
    choices: list[Choice], progress: UserProgress, balance: int
) -> list[ChoiceEvaluation]:
    """Evaluate every choice, keeping the authoring order of `choices`."""
    return [evaluate_choice(c, progress, balance) for c in choices]
