from __future__ import annotations

import unittest

from letsblog.models import PostDraft
from letsblog.normalize import (
    changed_post_fields,
    default_avatar_url,
    derive_excerpt,
    new_post_fields,
    normalize_tags,
    normalize_title,
)


class TestNormalize(unittest.TestCase):
    def test_derive_excerpt(self) -> None:
        self.assertEqual(derive_excerpt("A" * 200), "A" * 150)
        self.assertEqual(derive_excerpt("short"), "short")
        self.assertEqual(derive_excerpt("A" * 200, "given"), "given")
        self.assertEqual(derive_excerpt("body", "   "), "body")
        self.assertEqual(derive_excerpt(None), "")

    def test_title_and_tags(self) -> None:
        self.assertEqual(normalize_title(None), "Untitled")
        self.assertEqual(normalize_title("  Hi  "), "Hi")
        self.assertEqual(normalize_tags([" py ", "PY", "", "web", 3]), ["py", "web"])
        self.assertEqual(normalize_tags(None), [])

    def test_default_avatar_quotes_username(self) -> None:
        self.assertEqual(
            default_avatar_url("a b"),
            "https://ui-avatars.com/api/?name=a%20b&background=random",
        )

    def test_new_post_fields(self) -> None:
        fields = new_post_fields(PostDraft(content="x" * 151, cover_image="  "))
        self.assertEqual(fields["title"], "Untitled")
        self.assertEqual(len(fields["excerpt"]), 150)
        self.assertIsNone(fields["cover_image"])
        self.assertEqual(fields["tags"], [])

    def test_changed_post_fields_only_touch_supplied(self) -> None:
        current = {
            "title": "Old",
            "content": "old body",
            "excerpt": "old excerpt",
            "cover_image": "c.png",
            "tags": ["a"],
        }

        merged = changed_post_fields(current, PostDraft(title="New"))
        self.assertEqual(merged["title"], "New")
        self.assertEqual(merged["excerpt"], "old excerpt")
        self.assertEqual(merged["cover_image"], "c.png")

        merged = changed_post_fields(current, PostDraft(content="B" * 160))
        self.assertEqual(merged["excerpt"], "B" * 150)

        merged = changed_post_fields(current, PostDraft(content="new", excerpt="kept"))
        self.assertEqual(merged["excerpt"], "kept")


if __name__ == "__main__":
    unittest.main()
