"""
Tests for the KB Patch HTTP endpoints (kb_patch/router.py via main.app).

The shared engine dependency is overridden with an in-memory knowledge base,
so no request touches the real data directory.
"""

import pytest
from fastapi.testclient import TestClient

from kb_patch import InMemoryTextFileStore, PatchEngine
from kb_patch.router import get_patch_engine
from main import app


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def store(memory_store):
    return memory_store


@pytest.fixture
def client(store):
    app.dependency_overrides[get_patch_engine] = lambda: PatchEngine(store)
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.clear()


# ============================================================================
# Health
# ============================================================================

class TestHealth:
    """GET /kb-patch/health"""

    def test_health(self, client):
        response = client.get("/kb-patch/health")
        assert response.status_code == 200
        data = response.json()
        assert data["status"] == "ok"
        assert "knowledge_base" in data

    def test_root(self, client):
        response = client.get("/")
        assert response.status_code == 200
        assert response.json()["service"] == "kb-patch"


# ============================================================================
# Parse
# ============================================================================

class TestParseEndpoint:
    """POST /kb-patch/parse"""

    def test_parse(self, client, llm_turn_output):
        response = client.post("/kb-patch/parse", json={"text": llm_turn_output})
        assert response.status_code == 200
        data = response.json()
        assert data["count"] == 2
        assert data["directives"][0]["file_path"] == "3.Character_Status.md"
        assert data["directives"][0]["context"] == "# Bob > ## Stats"
        assert data["directives"][1]["target"] is None

    def test_parse_plain_text(self, client):
        response = client.post("/kb-patch/parse", json={"text": "no directives here"})
        assert response.json() == {"directives": [], "count": 0}

    def test_parse_requires_text(self, client):
        response = client.post("/kb-patch/parse", json={})
        assert response.status_code == 422


# ============================================================================
# Validate / Apply
# ============================================================================

class TestValidateEndpoint:
    """POST /kb-patch/validate"""

    def test_validate(self, client):
        response = client.post("/kb-patch/validate", json={
            "directives": [
                {"file_path": "9.Inventory.md", "replacement": "- Net", "context": "# Items"},
                {"file_path": "9.Inventory.md", "target": "Dragon egg"},
                {"file_path": "missing.md", "target": "x"},
            ]
        })
        assert response.status_code == 200
        outcomes = response.json()["outcomes"]
        assert outcomes[0]["matched"] is True
        assert outcomes[0]["match_line"] == 2
        assert outcomes[1]["fail_reason"] == "target_not_found"
        assert outcomes[2]["exists"] is False

    def test_empty_file_path_rejected(self, client):
        response = client.post("/kb-patch/validate", json={
            "directives": [{"file_path": "", "target": "x"}]
        })
        assert response.status_code == 422


class TestApplyEndpoint:
    """POST /kb-patch/apply"""

    def test_apply(self, client, store):
        response = client.post("/kb-patch/apply", json={
            "directives": [
                {"file_path": "9.Inventory.md", "replacement": "- Net", "context": "# Items"},
                {"file_path": "3.Character_Status.md", "target": "Nothing like this"},
            ]
        })
        assert response.status_code == 200
        data = response.json()
        assert data["messages"] == ["Updated 9.Inventory.md"]
        assert data["files_written"] == 1
        assert data["results"][1]["status"] == "unchanged"
        assert "- Net" in store.files["9.Inventory.md"]

    def test_apply_reports_errors_as_data(self):
        class BrokenStore(InMemoryTextFileStore):
            async def write_text_file(self, path, content):
                raise OSError("read-only file system")

        app.dependency_overrides[get_patch_engine] = lambda: PatchEngine(
            BrokenStore({"a.md": "alpha"})
        )
        try:
            response = TestClient(app).post("/kb-patch/apply", json={
                "directives": [{"file_path": "a.md", "target": "alpha", "replacement": "beta"}]
            })
        finally:
            app.dependency_overrides.clear()

        assert response.status_code == 200
        assert response.json()["messages"] == ["Error updating a.md: read-only file system"]


# ============================================================================
# Preview
# ============================================================================

class TestPreviewEndpoint:
    """POST /kb-patch/preview"""

    def test_preview_selected(self, client, store):
        before = dict(store.files)
        response = client.post("/kb-patch/preview", json={
            "text": "a\nb\nc\n",
            "directives": [
                {"file_path": "x.md", "target": "a", "replacement": "A"},
                {"file_path": "x.md", "target": "b", "replacement": "B"},
            ],
            "selected": [1],
        })
        assert response.status_code == 200
        data = response.json()
        assert data["text_after"] == "a\nB\nc\n"
        assert data["success"] is True
        assert "+B" in data["diff"]
        assert store.files == before

    def test_preview_warnings(self, client):
        response = client.post("/kb-patch/preview", json={
            "text": "# A\n",
            "directives": [{"file_path": "x.md", "replacement": "x", "context": "# Z"}],
        })
        data = response.json()
        assert data["text_after"] == "# A\n"
        assert data["warnings"] == ["Context not found in x.md: # Z"]

    def test_preview_rejects_multiple_files(self, client):
        response = client.post("/kb-patch/preview", json={
            "text": "a",
            "directives": [
                {"file_path": "x.md", "target": "a"},
                {"file_path": "y.md", "target": "a"},
            ],
        })
        assert response.status_code == 400
