import pytest

from auth import issue_token, verify_token


def test_token_round_trip_carries_owner() -> None:
    token = issue_token("user-42")
    assert verify_token(token) == "user-42"


def test_tampered_or_empty_tokens_are_rejected() -> None:
    token = issue_token("user-42")
    tail = "BB" if token.endswith("AA") else "AA"
    assert verify_token(token[:-2] + tail) is None
    assert verify_token("not-a-token") is None
    assert verify_token("") is None


def test_owner_is_required_to_issue() -> None:
    with pytest.raises(ValueError):
        issue_token("")
