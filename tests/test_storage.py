"""Tests for branching_tales.storage — JSON file stores."""

import asyncio
import json

import pytest
from pydantic import ValidationError

from branching_tales.errors import NotFoundError, PersistenceError
from branching_tales.models import Choice, Page, StoryMetadata, UserProgress
from branching_tales.storage import Storage

from conftest import STORY_ID


# ── Story graph ──────────────────────────────────────────────


async def test_get_page(storage: Storage):
    page = await storage.get_page("P3")
    assert page.story_id == STORY_ID
    assert page.is_ending is True


async def test_get_page_missing(storage: Storage):
    with pytest.raises(NotFoundError):
        await storage.get_page("nope")


async def test_get_choice(storage: Storage):
    choice = await storage.get_choice("c-premium")
    assert choice.is_premium is True
    assert choice.cost == 10


async def test_get_choice_missing(storage: Storage):
    assert await storage.get_choice("nope") is None


async def test_choices_keep_authoring_order(storage: Storage):
    storage.add_choice(STORY_ID, Choice(id="c-a", from_page_id="P1", to_page_id="P4", text="A"))
    choices = await storage.get_choices_from_page("P1")
    assert [c.id for c in choices] == ["c-free", "c-premium", "c-a"]


async def test_choices_from_ending_page(storage: Storage):
    assert await storage.get_choices_from_page("P3") == []


async def test_upsert_choice_keeps_position(storage: Storage):
    storage.add_choice(STORY_ID, Choice(
        id="c-free", from_page_id="P1", to_page_id="P2", text="Climb slowly",
    ))
    choices = await storage.get_choices_from_page("P1")
    assert [c.id for c in choices] == ["c-free", "c-premium"]
    assert choices[0].text == "Climb slowly"


async def test_first_page_uses_start_page(storage: Storage):
    assert await storage.get_first_page_id(STORY_ID) == "P1"


async def test_first_page_falls_back_to_lowest_number(tmp_path):
    s = Storage(tmp_path)
    s.create_story(StoryMetadata(id="T", title="T"))
    s.add_page(Page(id="b", story_id="T", page_number=2, content=""))
    s.add_page(Page(id="a", story_id="T", page_number=1, content=""))
    assert await s.get_first_page_id("T") == "a"


async def test_first_page_missing(tmp_path):
    s = Storage(tmp_path)
    s.create_story(StoryMetadata(id="empty", title="Empty"))
    with pytest.raises(NotFoundError):
        await s.get_first_page_id("empty")
    with pytest.raises(NotFoundError):
        await s.get_first_page_id("no-such-story")


async def test_metadata_tracks_page_count(storage: Storage):
    meta = await storage.get_story_metadata(STORY_ID)
    assert meta.total_pages == 4
    assert meta.title == "The Lighthouse"


async def test_metadata_missing(storage: Storage):
    with pytest.raises(NotFoundError):
        await storage.get_story_metadata("nope")


def test_add_page_to_missing_story(tmp_path):
    with pytest.raises(NotFoundError):
        Storage(tmp_path).add_page(Page(id="x", story_id="ghost", page_number=1, content=""))


# ── Progress ─────────────────────────────────────────────────


def _progress(**kw) -> UserProgress:
    base = {"user_id": "u", "story_id": STORY_ID, "current_page_id": "P1"}
    base.update(kw)
    return UserProgress(**base)


async def test_progress_missing(storage: Storage):
    assert await storage.get_progress("u", STORY_ID) is None


async def test_progress_roundtrip(storage: Storage):
    await storage.save_progress(_progress(completed_pages=["P1"]))
    loaded = await storage.get_progress("u", STORY_ID)
    assert loaded.completed_pages == ["P1"]


async def test_save_progress_unions_sets(storage: Storage):
    await storage.save_progress(_progress(completed_pages=["P1", "P3"], purchased_choices=["c-premium"]))
    merged = await storage.save_progress(_progress(current_page_id="P2", completed_pages=["P1", "P2"]))
    assert merged.current_page_id == "P2"
    assert set(merged.completed_pages) == {"P1", "P2", "P3"}
    assert merged.purchased_choices == ["c-premium"]
    assert await storage.get_progress("u", STORY_ID) == merged


async def test_replace_progress_overwrites(storage: Storage):
    await storage.save_progress(_progress(completed_pages=["P1", "P3"]))
    await storage.replace_progress(_progress())
    assert (await storage.get_progress("u", STORY_ID)).completed_pages == []


async def test_corrupt_progress_is_persistence_error(storage: Storage, tmp_path):
    path = tmp_path / "data" / "progress" / "u" / f"{STORY_ID}.json"
    path.parent.mkdir(parents=True)
    path.write_text("{not json")
    with pytest.raises(PersistenceError):
        await storage.get_progress("u", STORY_ID)


# ── Accounts ─────────────────────────────────────────────────


async def test_unknown_account_is_empty(storage: Storage):
    account = await storage.get_account("ghost")
    assert account.balance == 0
    assert account.purchases == []


async def test_credit(storage: Storage):
    assert await storage.credit("u", 5) == 5
    assert await storage.credit("u", 7) == 12
    assert await storage.get_balance("u") == 12


async def test_credit_negative_rejected(storage: Storage):
    with pytest.raises(ValueError):
        await storage.credit("u", -1)


async def test_locked_account_discards_on_error(storage: Storage):
    await storage.credit("u", 10)
    with pytest.raises(RuntimeError):
        async with storage.locked_account("u") as account:
            account.balance = 0
            raise RuntimeError("abort")
    assert await storage.get_balance("u") == 10


async def test_locked_account_never_commits_negative(storage: Storage):
    await storage.credit("u", 1)
    with pytest.raises(ValidationError):
        async with storage.locked_account("u") as account:
            account.balance -= 5
    assert await storage.get_balance("u") == 1


async def test_account_file_layout(storage: Storage, tmp_path):
    await storage.credit("u", 3)
    data = json.loads((tmp_path / "data" / "accounts" / "u.json").read_text())
    assert data["balance"] == 3
    assert not (tmp_path / "data" / "accounts" / "u.json.tmp").exists()


async def test_progress_merge_across_instances(storage: Storage, tmp_path):
    other = Storage(tmp_path / "data")
    await asyncio.gather(
        storage.save_progress(_progress(completed_pages=["P1"])),
        other.save_progress(_progress(completed_pages=["P2"])),
        storage.save_progress(_progress(completed_pages=["P3"])),
    )
    stored = await storage.get_progress("u", STORY_ID)
    assert set(stored.completed_pages) == {"P1", "P2", "P3"}


async def test_locks_released_after_use(storage: Storage):
    await storage.credit("u", 1)
    await storage.save_progress(_progress())
    assert len(storage._locks) == 0
