"""Unit tests for content-id reference resolution."""

from mailto_things.pipeline import reference_token, resolve


class TestResolve:
    """Tests for resolve()."""

    def test_text_without_references_is_unchanged(self):
        text = "Buy milk\nhttps://example.com/list"

        assert resolve(text, {"img1": "https://files/img1.png"}) == text
        assert resolve(text, {}) == text

    def test_replaces_reference_with_location(self):
        location = "https://files/msg/cid123.png"
        text = f"Look: ![photo]({reference_token('cid123')}) done"

        result = resolve(text, {"cid123": location})

        assert location in result
        assert "cid:cid123" not in result

    def test_replaces_every_occurrence(self):
        result = resolve("cid:a and cid:a", {"a": "L"})

        assert result == "L and L"

    def test_unmapped_reference_left_verbatim(self):
        result = resolve("cid:known cid:unknown", {"known": "L"})

        assert result == "L cid:unknown"

    def test_prefix_identifiers_do_not_clobber_each_other(self):
        result = resolve("cid:img1 cid:img10", {"img1": "ONE", "img10": "TEN"})

        assert result == "ONE TEN"

    def test_identifiers_with_regex_characters(self):
        result = resolve("cid:part1.2+x@mail", {"part1.2+x@mail": "L"})

        assert result == "L"

    def test_locations_are_not_resolved_again(self):
        result = resolve("cid:a", {"a": "cid:b", "b": "B"})

        assert result == "cid:b"
