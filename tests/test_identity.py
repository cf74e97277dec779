"""Tests for Firebase sign-in through the Identity Toolkit REST API."""

from unittest.mock import MagicMock, patch

import requests

from chatbot.services.identity import IDENTITY_TOOLKIT_URL, SessionIdentityProvider


def _resp(status_code=200, payload=None):
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = payload or {}
    resp.text = str(payload)
    return resp


def test_anonymous_sign_in() -> None:
    provider = SessionIdentityProvider(api_key="web-key")

    with patch("chatbot.services.identity.requests.post", return_value=_resp(payload={"localId": "anon-1"})) as post:
        session = provider.sign_in()

    assert session.identity == "anon-1"
    assert session.ready is True
    args, kwargs = post.call_args
    assert args[0] == f"{IDENTITY_TOOLKIT_URL}/accounts:signUp"
    assert kwargs["params"] == {"key": "web-key"}
    assert kwargs["timeout"] == 10.0


def test_custom_token_sign_in() -> None:
    provider = SessionIdentityProvider(api_key="web-key", initial_auth_token="custom")

    with patch(
        "chatbot.services.identity.requests.post",
        return_value=_resp(payload={"idToken": "id.token.sig"}),
    ) as post, patch(
        "chatbot.services.identity.jwt.decode", return_value={"user_id": "uid-42"}
    ):
        session = provider.sign_in()

    assert session.identity == "uid-42"
    assert post.call_args.args[0].endswith("accounts:signInWithCustomToken")
    assert post.call_args.kwargs["json"]["token"] == "custom"


def test_rejected_sign_in_is_ready_without_identity() -> None:
    provider = SessionIdentityProvider(api_key="web-key")
    error = _resp(400, {"error": {"message": "ADMIN_ONLY_OPERATION"}})

    with patch("chatbot.services.identity.requests.post", return_value=error):
        session = provider.sign_in()

    assert session.identity is None
    assert session.ready is True


def test_network_failure_is_ready_without_identity() -> None:
    provider = SessionIdentityProvider(api_key="web-key")

    with patch(
        "chatbot.services.identity.requests.post",
        side_effect=requests.ConnectionError("offline"),
    ):
        session = provider.sign_in()

    assert session == provider.session
    assert session.identity is None
    assert session.ready is True


def test_missing_api_key_skips_network() -> None:
    provider = SessionIdentityProvider(api_key="")

    with patch("chatbot.services.identity.requests.post") as post:
        session = provider.sign_in()

    post.assert_not_called()
    assert session.identity is None
    assert session.ready is True


def test_sign_in_happens_once() -> None:
    provider = SessionIdentityProvider(api_key="web-key")

    with patch("chatbot.services.identity.requests.post", return_value=_resp(payload={"localId": "anon-1"})) as post:
        first = provider.sign_in()
        second = provider.sign_in()

    assert first is second
    assert post.call_count == 1


def test_non_json_response_is_ready_without_identity() -> None:
    provider = SessionIdentityProvider(api_key="web-key")
    resp = _resp()
    resp.json.side_effect = ValueError("Expecting value")

    with patch("chatbot.services.identity.requests.post", return_value=resp):
        session = provider.sign_in()

    assert session.identity is None
    assert session.ready is True


def test_non_object_json_is_ready_without_identity() -> None:
    provider = SessionIdentityProvider(api_key="web-key", initial_auth_token="custom")
    resp = _resp()
    resp.json.return_value = ["not", "an", "object"]

    with patch("chatbot.services.identity.requests.post", return_value=resp):
        session = provider.sign_in()

    assert session.identity is None
    assert session.ready is True
