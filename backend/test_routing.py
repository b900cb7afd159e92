"""Tests for path normalisation and route-template matching."""

import pytest

from archgraph.runtime.routing import match_route, matches_route, normalize_path


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("users", "/users"),
        ("/users/", "/users"),
        ("//users///42//", "/users/42"),
        ("/", "/"),
        ("", "/"),
    ],
)
def test_normalize_path(raw, expected):
    assert normalize_path(raw) == expected


def test_colon_param_matches_one_segment():
    assert match_route("/users/:id", "/users/42") == {"id": "42"}


def test_bracket_and_brace_params_match_one_segment():
    assert match_route("/users/[id]/posts/{postId}", "/users/7/posts/9") == {"id": "7", "postId": "9"}
    assert match_route("/users/[id]", "/users/7/extra") is None


def test_catch_all_matches_remainder():
    assert match_route("/files/[...path]", "/files/a/b/c") == {"path": "a/b/c"}
    assert not matches_route("/files/[...path]", "/files")


def test_literal_route_does_not_match_longer_path():
    assert not matches_route("/users", "/users/42")
    assert matches_route("/users", "/users/")


def test_literal_segments_are_escaped():
    assert matches_route("/v1.0/items", "/v1.0/items")
    assert not matches_route("/v1.0/items", "/v1x0/items")


def test_empty_route_matches_root_only():
    assert match_route("/", "/") == {}
    assert not matches_route("", "/anything")


def test_param_names_need_not_be_identifiers():
    assert match_route("/orders/:order-id", "/orders/5") == {"order-id": "5"}
