"""Create a demo story and reader account for development/testing."""

import shutil
from pathlib import Path

from branching_tales.models import Choice, Page, StoryMetadata
from branching_tales.storage import Storage

DEMO_STORY = StoryMetadata(
    id="midnight-library",
    title="The Midnight Library",
    description="A library that only opens after midnight, and a librarian "
    "who knows more about you than she should.",
    category="mystery",
    spice_level=1,
    author_id="demo-author",
)

DEMO_PAGES = [
    ("p1", 1, "The door is unlocked. Rows of shelves vanish into the dark, and "
              "somewhere deep inside a lamp is burning.", False),
    ("p2", 2, "You follow the lamp. The librarian looks up from a ledger with "
              "your name on the cover.", False),
    ("p3", 3, "Behind the restricted shelf a narrow stair winds down into a "
              "reading room that should not exist.", False),
    ("p4", 4, "You close the ledger without reading it. Outside, dawn is already "
              "greying the street. The End.", True),
    ("p5", 5, "The last page of the ledger is blank, waiting for your hand. "
              "The End.", True),
]

DEMO_CHOICES = [
    Choice(id="c1", from_page_id="p1", to_page_id="p2", text="Follow the lamp"),
    Choice(id="c2", from_page_id="p1", to_page_id="p3", text="Slip past the restricted shelf",
           is_premium=True, cost=10, description="A hidden route through the stacks"),
    Choice(id="c3", from_page_id="p2", to_page_id="p4", text="Close the ledger"),
    Choice(id="c4", from_page_id="p3", to_page_id="p5", text="Write in the ledger",
           is_premium=True, cost=5),
]

DEMO_USER = "demo-reader"
DEMO_BALANCE = 25


async def create_demo_data(data_dir: Path) -> Storage:
    """Wipe existing story and reader data and create fresh demo data."""
    for sub in ("stories", "progress", "accounts"):
        if (data_dir / sub).exists():
            shutil.rmtree(data_dir / sub)
    index = data_dir / "index.json"
    if index.exists():
        index.unlink()

    storage = Storage(data_dir)
    storage.create_story(DEMO_STORY, start_page_id="p1")
    for page_id, number, content, is_ending in DEMO_PAGES:
        storage.add_page(Page(
            id=page_id, story_id=DEMO_STORY.id,
            page_number=number, content=content, is_ending=is_ending,
        ))
    for choice in DEMO_CHOICES:
        storage.add_choice(DEMO_STORY.id, choice)

    await storage.credit(DEMO_USER, DEMO_BALANCE)
    return storage
