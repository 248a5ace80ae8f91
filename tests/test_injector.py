"""Tests for content injection and anchor insertion."""

import pytest

from doctype.anchors import build_end_marker, build_start_marker, extract_anchors
from doctype.exceptions import AnchorNotFoundError
from doctype.injector import AnchorInserter, ContentInjector, atomic_write_text

START = build_start_marker("a1", "src/auth.py#login")
END = build_end_marker("a1")
DOC = f"# Auth\n\nIntro.\n\n{START}\nOld text.\n{END}\n\nOutro.\n"


@pytest.fixture
def injector():
    return ContentInjector()


# ---------------------------------------------------------------------------
# inject
# ---------------------------------------------------------------------------


class TestInject:
    def test_replaces_only_managed_region(self, injector):
        updated = injector.inject(DOC, "a1", "New text.")
        assert updated == f"# Auth\n\nIntro.\n\n{START}\nNew text.\n{END}\n\nOutro.\n"

    def test_content_with_trailing_newline_not_doubled(self, injector):
        updated = injector.inject(DOC, "a1", "New text.\n")
        assert f"New text.\n{END}" in updated
        assert "New text.\n\n" not in updated

    def test_empty_content(self, injector):
        updated = injector.inject(DOC, "a1", "")
        assert f"{START}\n{END}\n" in updated

    def test_unknown_anchor(self, injector):
        with pytest.raises(AnchorNotFoundError):
            injector.inject(DOC, "missing", "x")

    def test_other_anchors_untouched(self, injector):
        other = f"{build_start_marker('b2', 'src/auth.py#logout')}\nKeep me.\n{build_end_marker('b2')}\n"
        updated = injector.inject(DOC + other, "a1", "Changed.")
        assert "Keep me.\n" in updated
        assert extract_anchors("d.md", updated).find("b2").content == "Keep me.\n"

    def test_inline_region(self, injector):
        doc = f"Before {START}old{END} after\n"
        assert injector.inject(doc, "a1", "new") == f"Before {START}new{END} after\n"

    def test_crlf_document(self, injector):
        doc = f"# T\r\n{START}\r\nOld\r\n{END}\r\n"
        updated = injector.inject(doc, "a1", "New")
        assert updated == f"# T\r\n{START}\r\nNew\r\n{END}\r\n"

    def test_round_trip_is_exact(self, injector):
        doc = (
            f"# T\n{START}\nline\n\n  indented\n{END}\n"
            f"x {build_start_marker('i', 'a.py#f')}inline{build_end_marker('i')} y\n"
            f"{build_start_marker('e', 'a.py#g')}\n{build_end_marker('e')}\n"
        )
        for anchor in extract_anchors("d.md", doc).anchors:
            assert injector.inject(doc, anchor.id, anchor.content) == doc


# ---------------------------------------------------------------------------
# Files
# ---------------------------------------------------------------------------


class TestInjectIntoFile:
    def test_writes_file(self, injector, tmp_path):
        path = tmp_path / "auth.md"
        path.write_text(DOC, encoding="utf-8")

        result = injector.inject_into_file(path, "a1", "Line 1\nLine 2\nLine 3")

        assert result.success
        assert result.lines_changed == 2
        assert path.read_text(encoding="utf-8") == result.content
        assert "Line 3\n" + END in result.content

    def test_preview_does_not_write(self, injector, tmp_path):
        path = tmp_path / "auth.md"
        path.write_text(DOC, encoding="utf-8")

        result = injector.preview(path, "a1", "Preview")

        assert result.success
        assert "Preview\n" in result.content
        assert path.read_text(encoding="utf-8") == DOC

    def test_missing_anchor_leaves_file(self, injector, tmp_path):
        path = tmp_path / "auth.md"
        path.write_text(DOC, encoding="utf-8")

        result = injector.inject_into_file(path, "nope", "x")

        assert not result.success
        assert "nope" in result.error
        assert path.read_text(encoding="utf-8") == DOC

    def test_missing_file(self, injector, tmp_path):
        result = injector.inject_into_file(tmp_path / "absent.md", "a1", "x")
        assert not result.success
        assert "Could not read" in result.error

    def test_atomic_write_creates_parents(self, tmp_path):
        target = tmp_path / "deep" / "er" / "file.md"
        atomic_write_text(target, "hello\n")
        assert target.read_text(encoding="utf-8") == "hello\n"
        assert [p.name for p in target.parent.iterdir()] == ["file.md"]


# ---------------------------------------------------------------------------
# Insertion
# ---------------------------------------------------------------------------


class TestAnchorInserter:
    def test_creates_missing_file(self, tmp_path):
        path = tmp_path / "docs" / "user_guide.md"
        result = AnchorInserter().insert_into_file(path, "src/auth.py#login", "Body", anchor_id="n1")

        assert result.success
        assert result.anchor_id == "n1"
        text = path.read_text(encoding="utf-8")
        assert text == (
            "# User Guide\n\n## login\n\n"
            f"{build_start_marker('n1', 'src/auth.py#login')}\nBody\n{build_end_marker('n1')}\n"
        )
        assert extract_anchors(str(path), text).find("n1").content == "Body\n"

    def test_appends_to_existing(self, tmp_path):
        path = tmp_path / "auth.md"
        path.write_text(DOC, encoding="utf-8")

        result = AnchorInserter().insert_into_file(path, "src/auth.py#logout", "Bye", anchor_id="n2")

        assert result.success
        text = path.read_text(encoding="utf-8")
        assert text.startswith(DOC)
        ids = [a.id for a in extract_anchors(str(path), text).anchors]
        assert ids == ["a1", "n2"]

    def test_generates_id(self, tmp_path):
        result = AnchorInserter().insert_into_file(tmp_path / "x.md", "a.py#f", "Body")
        assert result.success
        assert result.anchor_id

    def test_existing_id_rejected(self, tmp_path):
        path = tmp_path / "auth.md"
        path.write_text(DOC, encoding="utf-8")

        result = AnchorInserter().insert_into_file(path, "src/auth.py#login", "x", anchor_id="a1")

        assert not result.success
        assert "already exists" in result.error
        assert path.read_text(encoding="utf-8") == DOC

    def test_unclosed_id_rejected(self, tmp_path):
        path = tmp_path / "auth.md"
        original = f"# Auth\n\n{build_start_marker('a1', 'src/auth.py#login')}\nOld\n## Other\n\nKeep me.\n"
        path.write_text(original, encoding="utf-8")

        result = AnchorInserter().insert_into_file(path, "src/auth.py#login", "x", anchor_id="a1")

        assert not result.success
        assert "malformed" in result.error
        assert path.read_text(encoding="utf-8") == original

    def test_without_section(self):
        block = AnchorInserter().build_block("a.py#f", "Body", "z", create_section=False)
        assert not block.startswith("##")

    def test_insert_adds_blank_line_without_trailing_newline(self):
        out = AnchorInserter().insert("# T", "a.py#f", "B", "z", create_section=False)
        assert out.startswith("# T\n\n<!-- doctype:start")
