from pathlib import Path

import pytest

from branching_tales.analytics import EventTracker
from branching_tales.engine import StoryEngine
from branching_tales.models import Choice, Page, StoryMetadata
from branching_tales.storage import Storage

STORY_ID = "S"
USER_ID = "reader-1"

# P1 --free--> P2 --premium(4)--> P4 (ending)
#  \--premium(10)--> P3 (ending)
STORY = StoryMetadata(id=STORY_ID, title="The Lighthouse", category="mystery")
PAGES = [
    Page(id="P1", story_id=STORY_ID, page_number=1, content="The lamp is out."),
    Page(id="P2", story_id=STORY_ID, page_number=2, content="Stairs spiral upward."),
    Page(id="P3", story_id=STORY_ID, page_number=3, content="The keeper waits.", is_ending=True),
    Page(id="P4", story_id=STORY_ID, page_number=4, content="The sea takes you.", is_ending=True),
]
CHOICES = [
    Choice(id="c-free", from_page_id="P1", to_page_id="P2", text="Climb the stairs"),
    Choice(id="c-premium", from_page_id="P1", to_page_id="P3",
           text="Open the sealed door", is_premium=True, cost=10),
    Choice(id="c-cheap", from_page_id="P2", to_page_id="P4",
           text="Jump", is_premium=True, cost=4),
]


def seed_story(storage: Storage) -> None:
    storage.create_story(STORY, start_page_id="P1")
    for page in PAGES:
        storage.add_page(page)
    for choice in CHOICES:
        storage.add_choice(STORY_ID, choice)


@pytest.fixture
def storage(tmp_path: Path) -> Storage:
    """A fresh storage root with story S seeded."""
    s = Storage(tmp_path / "data")
    seed_story(s)
    return s


@pytest.fixture
def tracker() -> EventTracker:
    return EventTracker()


@pytest.fixture
def engine(storage: Storage, tracker: EventTracker) -> StoryEngine:
    return StoryEngine(graph=storage, progress=storage, accounts=storage, analytics=tracker)
