"""
Tests for kb_patch.operations - PatchApplier apply / validate / preview.

These tests verify:
1. Replace, delete and append application
2. Non-fatal handling of missing targets and contexts
3. Dry-run validation (fail reasons, preview lines, duplicate detection)
4. Batches, selective preview and diffs
"""

import pytest

from kb_patch import (
    DirectiveMode,
    EditDirective,
    FailReason,
    PatchApplier,
)


@pytest.fixture
def applier():
    return PatchApplier()


def directive(**fields):
    fields.setdefault("file_path", "doc.md")
    return EditDirective(**fields)


# =============================================================================
# TESTS: apply
# =============================================================================

class TestApply:
    """Single-directive application."""

    def test_append_at_end_of_section(self, applier):
        content = "# A\nfoo\n# B\nbar\n"
        result = applier.apply(content, directive(context="# A", replacement="baz"))
        assert result == "# A\nfoo\nbaz\n# B\nbar\n"

    def test_delete_under_context(self, applier):
        content = "# A\n## A1\nx\n# B\n"
        result = applier.apply(content, directive(target="x", context="# A>## A1"))
        assert result == "# A\n## A1\n\n# B\n"

    def test_replace(self, applier):
        content = "# Stats\nHP: 10\nMP: 4\n"
        result = applier.apply(content, directive(target="HP: 10", replacement="HP: 7"))
        assert result == "# Stats\nHP: 7\nMP: 4\n"

    def test_replace_keeps_surrounding_whitespace(self, applier):
        content = "Gold:   12  coins\n"
        result = applier.apply(content, directive(target="12 coins", replacement="30 coins"))
        assert result == "Gold:   30 coins\n"

    def test_replace_with_full_width_target(self, applier):
        content = "Location: Inn\n"
        result = applier.apply(content, directive(target="Location：Inn", replacement="Location: Gate"))
        assert result == "Location: Gate\n"

    def test_replace_in_second_same_named_section_with_strict_mode(self, character_status):
        applier = PatchApplier(strict_breadcrumbs=True)
        result = applier.apply(
            character_status,
            directive(target="HP: 10", replacement="HP: 6", context="# Bob > ## Stats"),
        )
        assert result.count("HP: 10") == 1
        assert result.index("HP: 10") < result.index("# Bob") < result.index("HP: 6")

    def test_delete_heading_with_hashes(self, applier):
        content = "# Notes\n### Old lead\ntext\n"
        result = applier.apply(content, directive(target="# Old lead"))
        assert result == "# Notes\n\ntext\n"

    def test_append_without_context_goes_to_end(self, applier):
        content = "line"
        result = applier.apply(content, directive(replacement="more\nlines"))
        assert result == "line\nmore\nlines"

    def test_target_not_found_leaves_content(self, applier):
        content = "# A\nfoo\n"
        assert applier.apply(content, directive(target="missing", replacement="x")) == content

    def test_unresolved_context_never_appends_at_end(self, applier):
        content = "# A\nfoo\n"
        assert applier.apply(content, directive(context="# Nowhere", replacement="x")) == content

    def test_noop_directive(self, applier):
        content = "# A\nfoo\n"
        assert applier.apply(content, directive()) == content


class TestApplyWithResult:
    """Change details and warnings returned as data."""

    def test_change_detail(self, applier):
        content = "HP: 10\n"
        result = applier.apply_with_result(
            content, directive(target="HP: 10", replacement="HP: 7", label="damage")
        )

        assert result.success
        assert result.changed
        change = result.changes[0]
        assert (change.position_start, change.position_end) == (0, 6)
        assert change.removed_text == "HP: 10"
        assert change.inserted_text == "HP: 7"
        assert change.mode == DirectiveMode.REPLACE
        assert change.label == "damage"
        assert result.char_delta == -1

    def test_target_not_found_warning(self, applier):
        result = applier.apply_with_result("abc", directive(target="xyz"))
        assert not result.success
        assert not result.changed
        assert result.warnings == ["Target content not found in doc.md"]

    def test_context_not_found_warning(self, applier):
        result = applier.apply_with_result("abc", directive(context="# Gone", replacement="x"))
        assert result.warnings == ["Context not found in doc.md: # Gone"]

    def test_append_change_position(self, applier):
        content = "# A\nfoo\n# B\n"
        result = applier.apply_with_result(content, directive(context="# A", replacement="baz"))
        change = result.changes[0]
        assert change.mode == DirectiveMode.APPEND
        assert change.position_start == content.index("# B")
        assert result.content_after[change.position_start:].startswith("baz\n")

    def test_diff_generated(self, applier):
        result = applier.apply_with_result("a\nb\n", directive(target="b", replacement="c"))
        assert "-b" in result.diff
        assert "+c" in result.diff

    def test_to_dict(self, applier):
        result = applier.apply_with_result("a\nb\n", directive(target="b", replacement="c"))
        data = result.to_dict()
        assert data["success"] is True
        assert data["changes"][0]["mode"] == "replace"
        assert data["stats"]["char_delta"] == 0


# =============================================================================
# TESTS: batches and preview
# =============================================================================

class TestBatchAndPreview:
    """Sequential batches and selective previews."""

    def test_later_directives_see_earlier_edits(self, applier):
        content = "# Stats\nHP: 10\n"
        result = applier.apply_batch(content, [
            directive(target="HP: 10", replacement="HP: 8"),
            directive(target="HP: 8", replacement="HP: 5"),
        ])
        assert result.content_after == "# Stats\nHP: 5\n"
        assert len(result.changes) == 2

    def test_batch_collects_warnings_and_keeps_going(self, applier):
        content = "# A\nfoo\n"
        result = applier.apply_batch(content, [
            directive(target="missing"),
            directive(target="foo", replacement="bar"),
        ])
        assert result.content_after == "# A\nbar\n"
        assert len(result.warnings) == 1
        assert result.success

    def test_batch_with_nothing_applied(self, applier):
        result = applier.apply_batch("abc", [directive(target="zzz")])
        assert not result.success
        assert result.content_after == "abc"

    def test_preview_selected_only(self, applier):
        content = "a\nb\nc\n"
        directives = [
            directive(target="a", replacement="A"),
            directive(target="b", replacement="B"),
            directive(target="c", replacement="C"),
        ]
        result = applier.preview(content, directives, selected=[0, 2])
        assert result.content_after == "A\nb\nC\n"

    def test_preview_defaults_to_all(self, applier):
        content = "a\nb\n"
        directives = [directive(target="a", replacement="A"), directive(target="b", replacement="B")]
        assert applier.preview(content, directives).content_after == "A\nB\n"

    def test_preview_nothing_selected(self, applier):
        content = "a\n"
        result = applier.preview(content, [directive(target="a", replacement="A")], selected=[])
        assert result.content_after == content
        assert result.diff == ""


# =============================================================================
# TESTS: validate_content
# =============================================================================

class TestValidateContent:
    """Dry-run validation."""

    def test_replace_match_with_preview_lines(self, applier):
        content = "\n".join(f"line {i}" for i in range(20))
        outcome = applier.validate_content(content, directive(target="line 10", replacement="x"))

        assert outcome.exists and outcome.matched
        assert outcome.match_index == content.index("line 10")
        assert outcome.match_line == 10
        assert outcome.before_lines == [f"line {i}" for i in range(5, 10)]
        assert outcome.after_lines == [f"line {i}" for i in range(11, 16)]
        assert outcome.fail_reason is None

    def test_preview_lines_clamped_at_edges(self, applier):
        content = "first\nsecond\nthird"
        outcome = applier.validate_content(content, directive(target="first"))
        assert outcome.before_lines == []
        assert outcome.after_lines == ["second", "third"]

    def test_multiline_target_after_lines_skip_match(self, applier):
        content = "a\nb\nc\nd\n"
        outcome = applier.validate_content(content, directive(target="b\nc"))
        assert outcome.after_lines == ["d", ""]

    def test_configurable_preview_window(self):
        applier = PatchApplier(preview_lines=1)
        content = "a\nb\nc\nd\ne"
        outcome = applier.validate_content(content, directive(target="c"))
        assert outcome.before_lines == ["b"]
        assert outcome.after_lines == ["d"]

    def test_target_not_found(self, applier):
        outcome = applier.validate_content("abc", directive(target="xyz"))
        assert outcome.exists
        assert not outcome.matched
        assert outcome.fail_reason == FailReason.TARGET_NOT_FOUND

    def test_context_mismatch_is_distinguished(self, applier):
        content = "# Intro\nkey\n"
        outcome = applier.validate_content(content, directive(target="key", context="# Vault"))
        assert not outcome.matched
        assert outcome.fail_reason == FailReason.CONTEXT_MISMATCH

    def test_append_insertion_point(self, applier):
        content = "# A\nfoo\n# B\nbar\n"
        outcome = applier.validate_content(content, directive(context="# A", replacement="baz"))
        assert outcome.matched
        assert outcome.match_index == 2
        assert outcome.match_line == 2
        assert outcome.before_lines == ["# A", "foo"]
        assert outcome.after_lines == ["# B", "bar", ""]
        assert not outcome.already_exists

    def test_append_unresolved_context(self, applier):
        outcome = applier.validate_content("# A\n", directive(context="# Z", replacement="x"))
        assert not outcome.matched
        assert outcome.fail_reason == FailReason.CONTEXT_MISMATCH

    def test_duplicate_detected_after_application(self, applier):
        content = "# Items\n- Rope\n# Gold\n12\n"
        append = directive(context="# Items", replacement="- Brass key")

        first = applier.validate_content(content, append)
        assert first.matched and not first.already_exists

        updated = applier.apply(content, append)
        second = applier.validate_content(updated, append)
        assert second.matched
        assert second.already_exists

    def test_duplicate_ignores_formatting_differences(self, applier):
        content = "# Items\n-   Brass key\n"
        outcome = applier.validate_content(content, directive(context="# Items", replacement="- Brass  key"))
        assert outcome.already_exists

    def test_duplicate_check_needs_context(self, applier):
        content = "# Items\n- Brass key\n"
        outcome = applier.validate_content(content, directive(replacement="- Brass key"))
        assert outcome.matched
        assert not outcome.already_exists
