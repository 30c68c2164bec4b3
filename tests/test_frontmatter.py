"""Tests for the YAML frontmatter codec."""

from notelink import frontmatter


class TestDecode:

    def test_header_and_body(self):
        raw = "---\ntitle: Plans\ntags: [work, q3]\n---\nBody text\n"
        meta, body = frontmatter.decode(raw)
        assert meta == {"title": "Plans", "tags": ["work", "q3"]}
        assert body == "Body text\n"

    def test_no_header(self):
        raw = "Just a body\nwith lines"
        assert frontmatter.decode(raw) == ({}, raw)

    def test_malformed_yaml_is_body(self):
        """A broken header never raises; the raw text becomes the body."""
        raw = "---\ntitle: [unclosed\n---\nBody"
        assert frontmatter.decode(raw) == ({}, raw)

    def test_impossible_date_is_body(self):
        for bad in ("2024-13-45", "2024-02-30"):
            raw = f"---\ntitle: T\ndate: {bad}\n---\nbody text"
            assert frontmatter.decode(raw) == ({}, raw)

    def test_non_mapping_header_is_body(self):
        raw = "---\n- a\n- b\n---\nBody"
        assert frontmatter.decode(raw) == ({}, raw)

    def test_unterminated_header_is_body(self):
        raw = "---\ntitle: x\nno closing fence"
        assert frontmatter.decode(raw) == ({}, raw)

    def test_empty_header(self):
        meta, body = frontmatter.decode("---\n---\nBody")
        assert meta == {}
        assert body == "Body"

    def test_scalar_tag_becomes_list(self):
        meta, _ = frontmatter.decode("---\ntags: solo\n---\nx")
        assert meta["tags"] == ["solo"]

    def test_date_normalized_to_iso_string(self):
        meta, _ = frontmatter.decode("---\ndate: 2024-03-01\n---\nx")
        assert meta["date"] == "2024-03-01"

    def test_crlf_header(self):
        meta, body = frontmatter.decode("---\r\ntitle: Win\r\n---\r\nBody")
        assert meta["title"] == "Win"
        assert body == "Body"

    def test_horizontal_rule_later_in_body_is_not_header(self):
        raw = "Intro\n---\nMore"
        assert frontmatter.decode(raw) == ({}, raw)


class TestEncode:

    def test_without_metadata_returns_body(self):
        assert frontmatter.encode("Body", {}) == "Body"
        assert frontmatter.encode("Body", None) == "Body"

    def test_deterministic_key_order(self):
        a = frontmatter.encode("Body", {"title": "T", "date": "2024-01-01", "tags": ["x"]})
        b = frontmatter.encode("Body", {"tags": ["x"], "date": "2024-01-01", "title": "T"})
        assert a == b
        assert a.startswith("---\ndate: ")

    def test_encoded_note_decodes(self):
        raw = frontmatter.encode("Hello\n", {"title": "Grüße", "tags": ["a", "b"]})
        meta, body = frontmatter.decode(raw)
        assert meta == {"title": "Grüße", "tags": ["a", "b"]}
        assert body == "Hello\n"


class TestDeriveTitle:

    def test_frontmatter_title_wins(self):
        assert frontmatter.derive_title({"title": "Meta"}, "# Heading", "a/b.md") == "Meta"

    def test_first_heading(self):
        body = "intro\n## sub\n# Main heading\n# Second"
        assert frontmatter.derive_title({}, body, "a/b.md") == "Main heading"

    def test_file_stem_fallback(self):
        assert frontmatter.derive_title({}, "no heading", "projects/road map.md") == "road map"
