from __future__ import annotations

import re

from kb_sync.slugs import (
    USER_SLUG_PREFIX,
    file_key,
    file_resource_slug,
    slugify,
    user_resource_slug,
)


def test_slugify_lowercases_and_collapses_separators() -> None:
    assert slugify("User_123") == "edubox-user-user-123"
    assert slugify("  Jane.Doe@Example.com ") == "edubox-user-jane-doe-example-com"


def test_slugify_is_deterministic() -> None:
    assert slugify("user_2abcDEF") == slugify("user_2abcDEF")


def test_slugify_equal_only_when_normalized_forms_match() -> None:
    assert slugify("A B") == slugify("a-b")
    assert slugify("ab") != slugify("a-b")


def test_slugify_falls_back_to_timestamp_for_empty_input() -> None:
    for value in (None, "", "!!!"):
        slug = slugify(value)
        assert slug.startswith(USER_SLUG_PREFIX)
        assert re.fullmatch(r"\d+", slug[len(USER_SLUG_PREFIX) :])


def test_user_resource_slug_prefixes_user_slug() -> None:
    assert user_resource_slug("u1") == "user-edubox-user-u1"


def test_file_key_prefers_id_then_storage_id_then_name() -> None:
    assert file_key({"id": "F1", "storageId": "s", "name": "n"}) == "F1"
    assert file_key({"storageId": "store-9", "name": "n"}) == "store-9"
    assert file_key({"name": "notes.pdf"}) == "notes.pdf"


def test_file_key_truncates_to_32_chars() -> None:
    assert file_key({"id": "x" * 40}) == "x" * 32


def test_file_key_random_when_nothing_identifies_the_file() -> None:
    first = file_key({})
    second = file_key({})
    assert first != second
    assert len(first) == 32


def test_file_resource_slug_is_collapsed() -> None:
    slug = file_resource_slug("edubox-user-u1", {"id": "Lecture 01.PDF"})
    assert slug == "edubox-user-u1-file-lecture-01-pdf"
