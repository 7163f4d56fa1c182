import copy
import shutil
from pathlib import Path

import pytest

from questbot.achievements import AchievementEvaluator
from questbot.catalog import StoryCatalog
from questbot.engine import ChoiceProcessor
from questbot.models import Story
from questbot.storage import JsonStorage

TEST_DATA_DIR = Path("data-tests")
PRESETS_DIR = Path(__file__).parent / "presets"

# A small story exercising every effect, reward and requirement kind.
#
#   1:1 crossroads (start, +5 xp on entry)
#     left ──────> 1:2 cellar (lamp on first entry)
#     right ─────> 1:3 door
#     gate ──────> 1:4 tower (level 2)
#     boost_gate > 1:4 tower
#   1:2 grab_key > 1:3, back > 1:1
#   1:3 unlock ──> 2:1 beyond (needs the key), home > 1:1
TEST_STORY = {
    "start": {"chapter": 1, "scene": 1},
    "items": {"lamp": "Brass Lamp", "key": "Rusty Key"},
    "chapters": [
        {
            "id": 1,
            "title": "Test Chapter",
            "scenes": [
                {
                    "id": 1, "title": "Crossroads", "description": "Paths split.",
                    "rewards": [{"type": "experience", "amount": 5}],
                    "choices": [
                        {"token": "left", "text": "Go left", "target": {"chapter": 1, "scene": 2},
                         "effects": [{"type": "experience", "amount": 10}]},
                        {"token": "right", "text": "Go right", "target": {"chapter": 1, "scene": 3},
                         "effects": [{"type": "coins", "amount": 5}]},
                        {"token": "gate", "text": "Climb", "target": {"chapter": 1, "scene": 4},
                         "effects": [{"type": "experience", "amount": 10}]},
                        {"token": "boost_gate", "text": "Climb boldly", "target": {"chapter": 1, "scene": 4},
                         "effects": [{"type": "experience", "amount": 100}]},
                    ],
                },
                {
                    "id": 2, "title": "Cellar", "description": "Dark and damp.",
                    "rewards": [{"type": "item", "item_id": "lamp"}],
                    "choices": [
                        {"token": "grab_key", "text": "Grab the key", "target": {"chapter": 1, "scene": 3},
                         "effects": [{"type": "item", "item_id": "key"},
                                     {"type": "achievement", "achievement_id": "explorer"}]},
                        {"token": "back", "text": "Go back", "target": {"chapter": 1, "scene": 1},
                         "effects": [{"type": "experience", "amount": 1}]},
                    ],
                },
                {
                    "id": 3, "title": "Door", "description": "A locked door.",
                    "choices": [
                        {"token": "unlock", "text": "Unlock it", "target": {"chapter": 2, "scene": 1},
                         "effects": [{"type": "experience", "amount": 50}]},
                        {"token": "home", "text": "Head home", "target": {"chapter": 1, "scene": 1},
                         "effects": [{"type": "coins", "amount": 1}]},
                    ],
                },
                {
                    "id": 4, "title": "Tower", "description": "Windy.",
                    "requirements": [{"type": "level", "level": 2}],
                    "choices": [
                        {"token": "descend", "text": "Descend", "target": {"chapter": 1, "scene": 1},
                         "effects": [{"type": "experience", "amount": 1}]},
                    ],
                },
            ],
        },
        {
            "id": 2,
            "title": "Beyond",
            "scenes": [
                {
                    "id": 1, "title": "Beyond", "description": "Past the door.",
                    "requirements": [{"type": "item", "item_id": "key"}],
                    "choices": [
                        {"token": "return", "text": "Return", "target": {"chapter": 1, "scene": 1},
                         "effects": [{"type": "experience", "amount": 1}]},
                    ],
                },
            ],
        },
    ],
}


@pytest.fixture(autouse=True)
def clean_test_data():
    """Wipe data-tests/ before every test."""
    if TEST_DATA_DIR.exists():
        shutil.rmtree(TEST_DATA_DIR)
    yield
    # leave data-tests around after tests for inspection; CI can ignore it


@pytest.fixture
def storage() -> JsonStorage:
    return JsonStorage(TEST_DATA_DIR, PRESETS_DIR)


@pytest.fixture
def story_data() -> dict:
    """A fresh deep copy of TEST_STORY, safe to edit inside a test."""
    return copy.deepcopy(TEST_STORY)


@pytest.fixture
def catalog(story_data: dict) -> StoryCatalog:
    return StoryCatalog(Story.model_validate(story_data))


@pytest.fixture
def engine(catalog: StoryCatalog, storage: JsonStorage) -> ChoiceProcessor:
    return ChoiceProcessor(catalog, storage, AchievementEvaluator(storage))
