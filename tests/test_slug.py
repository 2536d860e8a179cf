"""Tests for slug normalization."""

from __future__ import annotations

import pytest

from slugroute.slug import slugify


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        ("Hello World", "hello-world"),
        ("  Hello   World  ", "hello-world"),
        ("Second Post: Deep Dive", "second-post-deep-dive"),
        ("a -- b", "a-b"),
        ("snake_case stays", "snake_case-stays"),
        ("--edge--", "edge"),
        ("Привет Мир", "привет-мир"),
        ("東京 タワー", "東京"),
        (42, "42"),
        ("!!!", ""),
    ],
)
def test_slugify(value: object, expected: str) -> None:
    assert slugify(value) == expected


def test_keep_case() -> None:
    assert slugify("Hello World", lowercase=False) == "Hello-World"


def test_extended_scripts_can_be_narrowed() -> None:
    assert slugify("Привет World", extended_scripts="") == "world"


def test_extra_script_ranges() -> None:
    assert slugify("Ünïcode", extended_scripts="À-ÿ") == "ünïcode"


@pytest.mark.parametrize("value", ["Hello World", "Second Post: Deep Dive", "Привет Мир", "a_b-c"])
def test_idempotent(value: str) -> None:
    once = slugify(value)
    assert slugify(once) == once
