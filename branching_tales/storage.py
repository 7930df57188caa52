"""JSON file storage.

All state is stored in flat JSON files under a configurable base directory.
There is no database or ORM; reads and writes go through plain helper
methods that load and dump JSON. Disk access runs in worker threads so every
public call is a real suspension point for the event loop.

Directory layout:

    {base}/
      index.json                   ← {"pages": {id: story}, "choices": {id: story}}
      stories/
        {story_id}.json            ← StoredStory (metadata + start page)
        {story_id}/
          pages.json               ← list of Page objects
          choices.json             ← list of Choice objects, authoring order
      progress/
        {user_id}/{story_id}.json  ← UserProgress
      accounts/
        {user_id}.json             ← Account (balance, purchases, history)
      config.json                  ← engine settings (see config.py)

Every write goes to a temporary file first and is moved into place with
os.replace, so a reader never sees a half-written document and an account
commit is all-or-nothing.

Read-modify-write units (account commits, progress merges) hold an flock on a
sidecar `<file>.lock` for their whole duration, so separate Storage instances
and worker processes sharing one data directory are serialised too.

The story graph is read-only to the engine; create_story / add_page /
add_choice exist for seeding demo data and tests.
"""

from __future__ import annotations

import asyncio
import fcntl
import json
import logging
import os
import weakref
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from branching_tales.errors import NotFoundError, PersistenceError
from branching_tales.models import (
    Account,
    Choice,
    Page,
    StoryMetadata,
    UserProgress,
)
from branching_tales.progress import merge_progress

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

LOCK_POLL_SECONDS = 0.01


class StoredStory(BaseModel):
    metadata: StoryMetadata
    start_page_id: str | None = None


class Storage:
    def __init__(self, base_path: Path) -> None:
        self._base = base_path
        self._stories_root = base_path / "stories"
        self._progress_root = base_path / "progress"
        self._accounts_root = base_path / "accounts"
        for root in (self._stories_root, self._progress_root, self._accounts_root):
            root.mkdir(parents=True, exist_ok=True)
        self._locks: weakref.WeakValueDictionary[str, asyncio.Lock] = weakref.WeakValueDictionary()

    @property
    def config_path(self) -> Path:
        return self._base / "config.json"

    # ------------------------------------------------------------------
    # Internal path helpers
    # ------------------------------------------------------------------

    def _index_file(self) -> Path:
        return self._base / "index.json"

    def _story_file(self, story_id: str) -> Path:
        return self._stories_root / f"{story_id}.json"

    def _story_dir(self, story_id: str) -> Path:
        return self._stories_root / story_id

    def _progress_file(self, user_id: str, story_id: str) -> Path:
        return self._progress_root / user_id / f"{story_id}.json"

    def _account_file(self, user_id: str) -> Path:
        return self._accounts_root / f"{user_id}.json"

    def _read_json(self, path: Path) -> Any:
        try:
            return json.loads(path.read_text())
        except (OSError, json.JSONDecodeError) as e:
            raise PersistenceError(f"Cannot read {path.name}") from e

    def _write_json(self, path: Path, data: Any) -> None:
        tmp = path.with_name(path.name + ".tmp")
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(data, indent=2, default=str))
            os.replace(tmp, path)
        except OSError as e:
            raise PersistenceError(f"Cannot write {path.name}") from e

    def _read_model(self, path: Path, model: type[M]) -> M | None:
        if not path.exists():
            return None
        try:
            return model.model_validate(self._read_json(path))
        except ValidationError as e:
            raise PersistenceError(f"Corrupt record in {path.name}") from e

    def _read_list(self, path: Path, model: type[M]) -> list[M]:
        if not path.exists():
            return []
        try:
            return [model.model_validate(item) for item in self._read_json(path)]
        except ValidationError as e:
            raise PersistenceError(f"Corrupt record in {path.name}") from e

    def _write_model(self, path: Path, record: BaseModel) -> None:
        self._write_json(path, record.model_dump(mode="json"))

    def _write_list(self, path: Path, records: list[M]) -> None:
        self._write_json(path, [r.model_dump(mode="json") for r in records])

    def _lock(self, key: str) -> asyncio.Lock:
        # Weakly held: the entry disappears once no caller is using or awaiting it.
        lock = self._locks.get(key)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[key] = lock
        return lock

    @asynccontextmanager
    async def _exclusive(self, path: Path) -> AsyncIterator[None]:
        """Hold the lock for `path` within this process and across processes.

        The asyncio lock queues local callers so at most one of them polls
        the file lock. Polling with LOCK_NB keeps the event loop free and
        means a cancelled waiter never ends up owning the lock.
        """
        async with self._lock(str(path)):
            lock_path = path.with_name(path.name + ".lock")
            try:
                lock_path.parent.mkdir(parents=True, exist_ok=True)
                fd = os.open(lock_path, os.O_RDWR | os.O_CREAT, 0o644)
            except OSError as e:
                raise PersistenceError(f"Cannot lock {path.name}") from e
            try:
                while True:
                    try:
                        fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                        break
                    except BlockingIOError:
                        await asyncio.sleep(LOCK_POLL_SECONDS)
                yield
            finally:
                # Closing the descriptor releases the flock.
                os.close(fd)

    def _read_index(self) -> dict[str, dict[str, str]]:
        path = self._index_file()
        if not path.exists():
            return {"pages": {}, "choices": {}}
        return self._read_json(path)

    # ------------------------------------------------------------------
    # Story graph: seeding
    # ------------------------------------------------------------------

    def create_story(self, metadata: StoryMetadata, start_page_id: str | None = None) -> StoryMetadata:
        story = StoredStory(metadata=metadata, start_page_id=start_page_id)
        self._write_model(self._story_file(metadata.id), story)
        self._story_dir(metadata.id).mkdir(exist_ok=True)
        return metadata

    def add_page(self, page: Page) -> Page:
        """Upsert a page by id and keep the story's page count current."""
        stored = self._read_model(self._story_file(page.story_id), StoredStory)
        if stored is None:
            raise NotFoundError(f"Story {page.story_id!r} not found")
        pages_path = self._story_dir(page.story_id) / "pages.json"
        pages = self._read_list(pages_path, Page)
        for i, p in enumerate(pages):
            if p.id == page.id:
                pages[i] = page
                break
        else:
            pages.append(page)
        self._write_list(pages_path, pages)

        stored.metadata = stored.metadata.model_copy(update={"total_pages": len(pages)})
        self._write_model(self._story_file(page.story_id), stored)

        index = self._read_index()
        index["pages"][page.id] = page.story_id
        self._write_json(self._index_file(), index)
        return page

    def add_choice(self, story_id: str, choice: Choice) -> Choice:
        """Upsert a choice by id. New choices go last in display order."""
        choices_path = self._story_dir(story_id) / "choices.json"
        choices = self._read_list(choices_path, Choice)
        for i, c in enumerate(choices):
            if c.id == choice.id:
                choices[i] = choice
                break
        else:
            choices.append(choice)
        self._write_list(choices_path, choices)

        index = self._read_index()
        index["choices"][choice.id] = story_id
        self._write_json(self._index_file(), index)
        return choice

    # ------------------------------------------------------------------
    # Story graph: lookups
    # ------------------------------------------------------------------

    def _load_page(self, page_id: str) -> Page | None:
        story_id = self._read_index()["pages"].get(page_id)
        if story_id is None:
            return None
        pages = self._read_list(self._story_dir(story_id) / "pages.json", Page)
        return next((p for p in pages if p.id == page_id), None)

    def _load_choice(self, choice_id: str) -> Choice | None:
        story_id = self._read_index()["choices"].get(choice_id)
        if story_id is None:
            return None
        choices = self._read_list(self._story_dir(story_id) / "choices.json", Choice)
        return next((c for c in choices if c.id == choice_id), None)

    def _load_choices_from_page(self, page_id: str) -> list[Choice]:
        story_id = self._read_index()["pages"].get(page_id)
        if story_id is None:
            return []
        choices = self._read_list(self._story_dir(story_id) / "choices.json", Choice)
        return [c for c in choices if c.from_page_id == page_id]

    def _load_first_page_id(self, story_id: str) -> str | None:
        stored = self._read_model(self._story_file(story_id), StoredStory)
        if stored is None:
            return None
        if stored.start_page_id:
            return stored.start_page_id
        pages = self._read_list(self._story_dir(story_id) / "pages.json", Page)
        if not pages:
            return None
        return min(pages, key=lambda p: p.page_number).id

    async def get_page(self, page_id: str) -> Page:
        page = await asyncio.to_thread(self._load_page, page_id)
        if page is None:
            raise NotFoundError(f"Page {page_id!r} not found")
        return page

    async def get_choice(self, choice_id: str) -> Choice | None:
        return await asyncio.to_thread(self._load_choice, choice_id)

    async def get_choices_from_page(self, page_id: str) -> list[Choice]:
        return await asyncio.to_thread(self._load_choices_from_page, page_id)

    async def get_first_page_id(self, story_id: str) -> str:
        page_id = await asyncio.to_thread(self._load_first_page_id, story_id)
        if page_id is None:
            raise NotFoundError(f"Story {story_id!r} has no starting page")
        return page_id

    async def get_story_metadata(self, story_id: str) -> StoryMetadata:
        stored = await asyncio.to_thread(
            self._read_model, self._story_file(story_id), StoredStory
        )
        if stored is None:
            raise NotFoundError(f"Story {story_id!r} not found")
        return stored.metadata

    # ------------------------------------------------------------------
    # Progress
    # ------------------------------------------------------------------

    async def get_progress(self, user_id: str, story_id: str) -> UserProgress | None:
        return await asyncio.to_thread(
            self._read_model, self._progress_file(user_id, story_id), UserProgress
        )

    async def save_progress(self, progress: UserProgress) -> UserProgress:
        """Persist progress, unioning set fields with the stored record."""
        path = self._progress_file(progress.user_id, progress.story_id)
        async with self._exclusive(path):
            stored = await asyncio.to_thread(self._read_model, path, UserProgress)
            merged = merge_progress(stored, progress)
            await asyncio.to_thread(self._write_model, path, merged)
        logger.debug(
            "saved progress user=%s story=%s page=%s",
            progress.user_id, progress.story_id, merged.current_page_id,
        )
        return merged

    async def replace_progress(self, progress: UserProgress) -> UserProgress:
        """Overwrite progress without merging. Only used for restarts."""
        path = self._progress_file(progress.user_id, progress.story_id)
        async with self._exclusive(path):
            await asyncio.to_thread(self._write_model, path, progress)
        return progress

    # ------------------------------------------------------------------
    # Accounts
    # ------------------------------------------------------------------

    def _load_account(self, user_id: str) -> Account:
        account = self._read_model(self._account_file(user_id), Account)
        return account or Account(user_id=user_id)

    async def get_account(self, user_id: str) -> Account:
        return await asyncio.to_thread(self._load_account, user_id)

    async def get_balance(self, user_id: str) -> int:
        return (await self.get_account(user_id)).balance

    @asynccontextmanager
    async def locked_account(self, user_id: str) -> AsyncIterator[Account]:
        """Exclusive, all-or-nothing unit of work on one account.

        The account is written back only if the block exits cleanly. Any
        exception inside the block discards every change made to the yielded
        object.
        """
        async with self._exclusive(self._account_file(user_id)):
            account = await asyncio.to_thread(self._load_account, user_id)
            yield account
            # Re-validate so a negative balance can never be committed.
            committed = Account.model_validate(account.model_dump())
            await asyncio.to_thread(self._write_model, self._account_file(user_id), committed)

    async def credit(self, user_id: str, amount: int) -> int:
        """Add funds supplied by the payment provider. Returns the new balance."""
        if amount < 0:
            raise ValueError("credit amount must be non-negative")
        async with self.locked_account(user_id) as account:
            account.balance += amount
        logger.info("credited user=%s amount=%d balance=%d", user_id, amount, account.balance)
        return account.balance
