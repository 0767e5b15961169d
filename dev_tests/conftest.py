"""Shared pytest fixtures for KB Patch Engine tests."""

import os
import sys

import pytest

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from kb_patch import InMemoryTextFileStore, LocalTextFileStore, PatchEngine  # noqa: E402


# ============================================================================
# Document Fixtures
# ============================================================================

CHARACTER_STATUS = """# Alice
## Stats
HP: 10
MP: 4
## Equipment
- Sword
# Bob
## Stats
HP: 10
MP: 0
"""

STORY_OUTLINE = """# Chapter 1
## Arrival
The party reached the village at dusk.

# last_scene

They sit by the fire in the inn.
"""

LLM_TURN_OUTPUT = """The innkeeper nods and hands you a key.

<save file="3.Character_Status.md" context="# Bob > ## Stats">
  <update>
    <target>HP: 10</target>
    <replacement>HP: 6</replacement>
  </update>
</save>

<save file="9.Inventory.md" context="# Items">
  <update>
    <replacement>- Brass key</replacement>
  </update>
</save>
"""


@pytest.fixture
def character_status():
    """Two characters with identically named sections."""
    return CHARACTER_STATUS


@pytest.fixture
def story_outline():
    """Story outline ending in a last_scene trailer."""
    return STORY_OUTLINE


@pytest.fixture
def llm_turn_output():
    """Model output for one turn: prose plus two <save> blocks."""
    return LLM_TURN_OUTPUT


# ============================================================================
# Store / Engine Fixtures
# ============================================================================

@pytest.fixture
def memory_store():
    """In-memory knowledge base with a few documents."""
    return InMemoryTextFileStore({
        "3.Character_Status.md": CHARACTER_STATUS,
        "9.Inventory.md": "# Items\n- Rope\n# Gold\n12\n",
        "2.Story_Outline.md": STORY_OUTLINE,
    })


@pytest.fixture
def engine(memory_store):
    """PatchEngine over the in-memory knowledge base."""
    return PatchEngine(memory_store)


@pytest.fixture
def kb_dir(tmp_path):
    """On-disk knowledge base directory with one document."""
    root = tmp_path / "knowledge_base"
    root.mkdir()
    (root / "9.Inventory.md").write_text("# Items\n- Rope\n", encoding="utf-8")
    return root


@pytest.fixture
def local_store(kb_dir):
    return LocalTextFileStore(kb_dir)
