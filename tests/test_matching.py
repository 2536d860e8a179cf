"""Tests for URL matching against single routes."""

from __future__ import annotations

import pytest

from slugroute.declarations import RouteOptions
from slugroute.errors import ConfigurationError
from slugroute.matching import (
    MatchEngine,
    MatchResult,
    compositions,
    extract_id,
    like_pattern,
    segment_candidates,
    split_path,
)
from slugroute.routing import compile_pattern, parse_pattern


def _route(resolver, pattern: str, table: str | None, **options):
    entity = resolver.parse_entity(table) if table else None
    return compile_pattern(pattern, "ctrl", RouteOptions(**options), entity)


# =====================================================================
# Pure helpers
# =====================================================================


class TestCompositions:
    def test_two_fields_three_words(self) -> None:
        assert compositions(3, 2) == [(1, 2), (2, 1)]

    def test_order_is_first_field_ascending(self) -> None:
        assert compositions(4, 3) == [(1, 1, 2), (1, 2, 1), (2, 1, 1)]

    def test_single_field_takes_everything(self) -> None:
        assert compositions(5, 1) == [(5,)]

    def test_exact_fit(self) -> None:
        assert compositions(2, 2) == [(1, 1)]

    def test_not_enough_words(self) -> None:
        assert compositions(1, 2) == []
        assert compositions(3, 0) == []

    def test_every_composition_sums_to_word_count(self) -> None:
        result = compositions(6, 3)
        assert len(result) == 10
        assert all(sum(c) == 6 and min(c) >= 1 for c in result)


def test_split_path() -> None:
    assert split_path("/blog//news/") == ["blog", "news"]
    assert split_path("/") == []


def test_like_pattern() -> None:
    assert like_pattern("john-paul") == "john%paul"
    assert like_pattern("doe") == "doe"


def test_like_pattern_lowercases_words() -> None:
    assert like_pattern("John-Paul") == "john%paul"


def test_like_pattern_escapes_wildcards() -> None:
    assert like_pattern("50%_off") == "50\\%\\_off"
    assert like_pattern("a\\b-%") == "a\\\\b%\\%"


class TestSegmentCandidates:
    def test_partitions_in_order(self) -> None:
        (segment,) = parse_pattern("/:first-:last")
        candidates = [
            {part.name: value for part, value in assignment}
            for assignment in segment_candidates(segment, "john-paul-doe")
        ]
        assert candidates == [
            {"first": "john", "last": "paul-doe"},
            {"first": "john-paul", "last": "doe"},
        ]

    def test_too_few_words(self) -> None:
        (segment,) = parse_pattern("/:first-:last")
        assert list(segment_candidates(segment, "john")) == []

    def test_static_tokens_must_match(self) -> None:
        (segment,) = parse_pattern("/post-:title")
        assert [[v for _, v in a] for a in segment_candidates(segment, "post-hello-world")] == [["hello-world"]]
        assert list(segment_candidates(segment, "page-hello")) == []

    def test_static_tokens_case_insensitive(self) -> None:
        (segment,) = parse_pattern("/post-:title")
        assert list(segment_candidates(segment, "POST-hello")) == []
        assert len(list(segment_candidates(segment, "POST-hello", case_sensitive=False))) == 1

    def test_suffix_is_stripped(self) -> None:
        (segment,) = parse_pattern(r"/:name\.json")
        ((part, value),) = next(segment_candidates(segment, "report.json"))
        assert part.name == "name"
        assert value == "report"

    def test_suffix_is_required(self) -> None:
        (segment,) = parse_pattern(r"/:name\.json")
        assert list(segment_candidates(segment, "report.xml")) == []
        assert list(segment_candidates(segment, ".json")) == []


class TestExtractId:
    def test_plain_id(self) -> None:
        (segment,) = parse_pattern("/:id")
        assert extract_id(segment, "42", "id") == 42

    def test_non_numeric(self) -> None:
        (segment,) = parse_pattern("/:id")
        assert extract_id(segment, "hello", "id") is None

    def test_id_after_slug(self) -> None:
        (segment,) = parse_pattern("/:title-:id")
        assert extract_id(segment, "my-long-title-42", "id") == 42

    def test_id_before_slug(self) -> None:
        (segment,) = parse_pattern("/:id-:title")
        assert extract_id(segment, "42-my-title", "id") == 42

    def test_related_field_is_not_the_primary_key(self) -> None:
        (segment,) = parse_pattern("/:category.id")
        assert extract_id(segment, "42", "id") is None

    def test_other_primary_name(self) -> None:
        (segment,) = parse_pattern("/:id")
        assert extract_id(segment, "42", "post_id") is None


# =====================================================================
# MatchEngine
# =====================================================================


class TestMatchEngine:
    def test_static_route_matches_without_lookup(self, recorder) -> None:
        route = _route(recorder, "/about", None)
        assert MatchEngine(recorder).match("/about", route) == MatchResult()
        assert recorder.fetches == []

    def test_fewer_segments_never_match(self, recorder) -> None:
        route = _route(recorder, "/blog/:category.slug/:title", "posts")
        assert MatchEngine(recorder).match("/blog/news", route) is None
        assert recorder.fetches == []

    def test_static_mismatch(self, recorder) -> None:
        route = _route(recorder, "/blog/:title", "posts")
        assert MatchEngine(recorder).match("/news/hello-world", route) is None

    def test_numeric_id_shortcut_skips_lookup(self, recorder) -> None:
        route = _route(recorder, "/posts/:id", "posts")
        assert MatchEngine(recorder).match("/posts/42", route) == MatchResult(42)
        assert recorder.fetches == []

    def test_single_field_slug(self, recorder) -> None:
        route = _route(recorder, "/posts/:title", "posts")
        assert MatchEngine(recorder).match("/posts/second-post-deep-dive", route) == MatchResult(3)

    def test_single_field_miss(self, recorder) -> None:
        route = _route(recorder, "/posts/:title", "posts")
        assert MatchEngine(recorder).match("/posts/nothing-here", route) is None

    @pytest.mark.parametrize("path", ["/posts/%", "/posts/h_llo-world", "/posts/%-%"])
    def test_wildcards_in_url_never_match(self, resolver, path: str) -> None:
        route = _route(resolver, "/posts/:title", "posts")
        assert MatchEngine(resolver).match(path, route) is None

    def test_punctuated_title_matches_its_slug(self, resolver) -> None:
        resolver.connection.execute("INSERT INTO posts (id, title) VALUES (9, 'Hello again!')")
        route = _route(resolver, "/posts/:title", "posts")
        assert MatchEngine(resolver).match("/posts/hello-again", route) == MatchResult(9)

    def test_trailing_continuation_is_allowed(self, resolver) -> None:
        route = _route(resolver, "/posts/:id", "posts")
        assert MatchEngine(resolver).match("/posts/3/comments", route) == MatchResult(3)

    def test_multi_field_tries_every_partition(self, recorder) -> None:
        route = _route(recorder, "/people/:first-:last", "authors")
        assert MatchEngine(recorder).match("/people/john-paul-doe", route) == MatchResult(1)

        tried = [tuple((c.column, c.value) for c in filters.where) for _, _, filters in recorder.fetches]
        assert tried == [
            (("first", "john"), ("last", "paul%doe")),
            (("first", "john%paul"), ("last", "doe")),
        ]

    def test_multi_field_first_partition_wins(self, recorder) -> None:
        route = _route(recorder, "/people/:first-:last", "authors")
        assert MatchEngine(recorder).match("/people/mary-jane-smith", route) == MatchResult(2)
        assert len(recorder.fetches) == 1

    def test_multi_field_fails_after_all_partitions(self, recorder) -> None:
        route = _route(recorder, "/people/:first-:last", "authors")
        assert MatchEngine(recorder).match("/people/no-such-person", route) is None
        assert len(recorder.fetches) == 2

    def test_relationship_filters_constrain_lookup(self, resolver) -> None:
        route = _route(resolver, "/blog/:category.slug/:title", "posts")
        engine = MatchEngine(resolver)
        assert engine.match("/blog/news/hello-world", route) == MatchResult(1)
        assert engine.match("/blog/tech-news/hello-world", route) == MatchResult(2)
        assert engine.match("/blog/sports/hello-world", route) is None

    def test_relationship_only_route(self, resolver) -> None:
        route = _route(resolver, "/by/:author.last", "posts")
        assert MatchEngine(resolver).match("/by/jane-smith", route) == MatchResult(2)

    def test_two_hop_relationship(self, resolver) -> None:
        route = _route(resolver, "/c/:category.parent.slug/:title", "posts")
        engine = MatchEngine(resolver)
        assert engine.match("/c/news/second-post-deep-dive", route) == MatchResult(3)
        # post 1's category has no parent
        assert engine.match("/c/news/hello-world", route) == MatchResult(2)

    def test_related_field_inside_partitioned_segment(self, recorder) -> None:
        route = _route(recorder, "/x/:category.slug-:title", "posts")
        assert MatchEngine(recorder).match("/x/tech-news-hello-world", route) == MatchResult(2)
        assert [f.where[0].value for _, _, f in recorder.fetches] == ["tech", "tech%news"]

    def test_escaped_suffix(self, resolver) -> None:
        route = _route(resolver, r"/reports/:name\.json", "reports")
        assert MatchEngine(resolver).match("/reports/report.json", route) == MatchResult(2)
        assert MatchEngine(resolver).match("/reports/report.xml", route) is None

    def test_case_insensitive_route(self, resolver) -> None:
        route = _route(resolver, "/Blog/:title", "posts", case_sensitive=False)
        assert MatchEngine(resolver).match("/BLOG/second-post-deep-dive", route) == MatchResult(3)

    def test_missing_entity_is_an_error(self, resolver) -> None:
        route = _route(resolver, "/pages/:slug", None)
        with pytest.raises(ConfigurationError, match="no entity"):
            MatchEngine(resolver).match("/pages/home", route)

    def test_missing_resolver_is_an_error(self, resolver) -> None:
        route = _route(resolver, "/posts/:title", "posts")
        with pytest.raises(ConfigurationError, match="needs a resolver"):
            MatchEngine(None).match("/posts/hello-world", route)
