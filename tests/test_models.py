"""Tests for branching_tales.models."""

import pytest
from pydantic import TypeAdapter, ValidationError

from branching_tales.models import (
    Account,
    ByChoice,
    ByTargetPage,
    Choice,
    NavigationRequest,
    PurchaseRecord,
    Resume,
    StoryMetadata,
    UserProgress,
)

REQUEST = TypeAdapter(NavigationRequest)


class TestChoice:
    def test_defaults_to_free(self) -> None:
        c = Choice(id="c", from_page_id="a", to_page_id="b", text="Go")
        assert c.is_premium is False
        assert c.cost == 0
        assert c.description is None

    def test_negative_cost_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Choice(id="c", from_page_id="a", to_page_id="b", text="Go", is_premium=True, cost=-1)


class TestStoryMetadata:
    def test_spice_level_bounds(self) -> None:
        with pytest.raises(ValidationError):
            StoryMetadata(id="s", title="T", spice_level=4)

    def test_serialise_roundtrip(self) -> None:
        meta = StoryMetadata(id="s", title="T", category="romance", spice_level=2)
        assert StoryMetadata.model_validate_json(meta.model_dump_json()) == meta


class TestUserProgress:
    def test_sets_default_empty(self) -> None:
        p = UserProgress(user_id="u", story_id="s", current_page_id="p")
        assert p.completed_pages == []
        assert p.purchased_choices == []
        assert p.last_read_at.tzinfo is not None


class TestAccount:
    def test_owns(self) -> None:
        account = Account(user_id="u", purchases=[PurchaseRecord(choice_id="c1", story_id="s", cost=3)])
        assert account.owns("c1")
        assert not account.owns("c2")

    def test_negative_balance_rejected(self) -> None:
        with pytest.raises(ValidationError):
            Account(user_id="u", balance=-1)


class TestNavigationRequest:
    def test_discriminates_variants(self) -> None:
        assert isinstance(
            REQUEST.validate_python({"kind": "choice", "user_id": "u", "story_id": "s", "choice_id": "c"}),
            ByChoice,
        )
        assert isinstance(
            REQUEST.validate_python({"kind": "page", "user_id": "u", "story_id": "s", "target_page_id": "p"}),
            ByTargetPage,
        )
        assert isinstance(
            REQUEST.validate_python({"kind": "resume", "user_id": "u", "story_id": "s"}),
            Resume,
        )

    def test_unknown_kind_rejected(self) -> None:
        with pytest.raises(ValidationError):
            REQUEST.validate_python({"kind": "teleport", "user_id": "u", "story_id": "s"})

    def test_variant_requires_its_field(self) -> None:
        with pytest.raises(ValidationError):
            REQUEST.validate_python({"kind": "choice", "user_id": "u", "story_id": "s"})
