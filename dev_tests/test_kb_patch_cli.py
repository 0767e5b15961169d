"""
Tests for tools/kb_patch_cli.py - command line parse / validate / apply.
"""

import io

import pytest

import json_utils as json
from tools import kb_patch_cli


@pytest.fixture
def turn_file(tmp_path, llm_turn_output):
    path = tmp_path / "turn.txt"
    path.write_text(llm_turn_output, encoding="utf-8")
    return path


@pytest.fixture
def kb_root(tmp_path, character_status):
    root = tmp_path / "kb"
    root.mkdir()
    (root / "3.Character_Status.md").write_text(character_status, encoding="utf-8")
    (root / "9.Inventory.md").write_text("# Items\n- Rope\n# Gold\n12\n", encoding="utf-8")
    return root


class TestParseCommand:
    """kb_patch_cli parse"""

    def test_parse_lists_directives(self, turn_file, capsys):
        assert kb_patch_cli.main(["parse", str(turn_file)]) == 0
        out = capsys.readouterr().out
        assert "[replace] 3.Character_Status.md @ # Bob > ## Stats" in out
        assert "[append] 9.Inventory.md @ # Items" in out

    def test_parse_json(self, turn_file, capsys):
        assert kb_patch_cli.main(["parse", str(turn_file), "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [d["mode"] for d in data] == ["replace", "append"]

    def test_parse_stdin(self, monkeypatch, capsys):
        monkeypatch.setattr("sys.stdin", io.StringIO("nothing to save"))
        assert kb_patch_cli.main(["parse", "-"]) == 0
        assert "(no directives found)" in capsys.readouterr().out

    def test_missing_input_file(self, tmp_path):
        with pytest.raises(SystemExit) as exc_info:
            kb_patch_cli.main(["parse", str(tmp_path / "absent.txt")])
        assert exc_info.value.code == 2


class TestValidateCommand:
    """kb_patch_cli validate"""

    def test_all_match(self, turn_file, kb_root, capsys):
        assert kb_patch_cli.main(["validate", str(turn_file), "--root", str(kb_root)]) == 0
        out = capsys.readouterr().out
        assert out.count("OK") == 2

    def test_failure_exit_code(self, tmp_path, kb_root, capsys):
        turn = tmp_path / "bad.txt"
        turn.write_text(
            '<save file="9.Inventory.md"><update><target>Dragon egg</target></update></save>',
            encoding="utf-8",
        )
        assert kb_patch_cli.main(["validate", str(turn), "--root", str(kb_root)]) == 1
        assert "FAIL (target_not_found)" in capsys.readouterr().out

    def test_missing_root(self, turn_file, tmp_path):
        with pytest.raises(SystemExit):
            kb_patch_cli.main(["validate", str(turn_file), "--root", str(tmp_path / "nope")])


class TestApplyCommand:
    """kb_patch_cli apply"""

    def test_apply_writes_files(self, turn_file, kb_root, capsys):
        assert kb_patch_cli.main(["apply", str(turn_file), "--root", str(kb_root)]) == 0
        out = capsys.readouterr().out
        assert "Updated 9.Inventory.md" in out
        assert "2 file(s) written" in out
        inventory = (kb_root / "9.Inventory.md").read_text(encoding="utf-8")
        assert "- Brass key" in inventory

    def test_apply_json(self, turn_file, kb_root, capsys):
        assert kb_patch_cli.main(["apply", str(turn_file), "--root", str(kb_root), "--json"]) == 0
        data = json.loads(capsys.readouterr().out)
        assert [r["status"] for r in data["results"]] == ["updated", "updated"]
        assert data["files_written"] == 2
        assert len(data["messages"]) == 2
        assert all(m.startswith("Updated ") for m in data["messages"])
