"""Tests for the Daily integration client."""

from __future__ import annotations

from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httpx
from pydantic import SecretStr
import pytest

from mentorline.integrations.daily_client import (
    DailyClient,
    DailyError,
    FakeVideoRoomProvider,
)

EXPIRES = datetime(2024, 1, 8, 17, 0, tzinfo=timezone.utc)


def _response(status_code, payload=None, text=""):
    response = MagicMock()
    response.status_code = status_code
    if payload is None:
        response.json.side_effect = ValueError("no json")
    else:
        response.json.return_value = payload
    response.text = text or str(payload)
    return response


def _client_returning(mock_client_cls, *responses):
    mock_client = MagicMock()
    mock_client.__enter__ = MagicMock(return_value=mock_client)
    mock_client.__exit__ = MagicMock(return_value=False)
    mock_client.request.side_effect = list(responses)
    mock_client_cls.return_value = mock_client
    return mock_client


def _make_client(**overrides):
    defaults = {"api_key": "daily_test_key", "base_url": "https://api.daily.co/v1/"}
    defaults.update(overrides)
    return DailyClient(**defaults)


class TestCreateRoom:
    @patch("mentorline.integrations.daily_client.httpx.Client")
    def test_create_room_sends_private_room_body(self, mock_client_cls):
        mock_client = _client_returning(
            mock_client_cls,
            _response(200, {"name": "call-abc", "url": "https://mentorline.daily.co/call-abc"}),
        )

        url = _make_client().create_room("call-abc", max_participants=2, expires_at=EXPIRES)

        assert url == "https://mentorline.daily.co/call-abc"
        args, kwargs = mock_client.request.call_args
        assert args == ("POST", "https://api.daily.co/v1/rooms")
        assert kwargs["headers"]["Authorization"] == "Bearer daily_test_key"
        body = kwargs["json"]
        assert body["name"] == "call-abc"
        assert body["privacy"] == "private"
        assert body["properties"]["max_participants"] == 2
        assert body["properties"]["exp"] == int(EXPIRES.timestamp())

    @patch("mentorline.integrations.daily_client.httpx.Client")
    def test_existing_room_is_reused(self, mock_client_cls):
        mock_client = _client_returning(
            mock_client_cls,
            _response(400, {"error": "invalid-request-error", "info": "a room named call-abc already exists"}),
            _response(200, {"name": "call-abc", "url": "https://mentorline.daily.co/call-abc"}),
        )

        url = _make_client().create_room("call-abc", max_participants=2, expires_at=EXPIRES)

        assert url == "https://mentorline.daily.co/call-abc"
        assert mock_client.request.call_args_list[1][0] == ("GET", "https://api.daily.co/v1/rooms/call-abc")

    @patch("mentorline.integrations.daily_client.httpx.Client")
    def test_api_error_raises_daily_error(self, mock_client_cls):
        _client_returning(mock_client_cls, _response(500, None, text="upstream exploded"))

        with pytest.raises(DailyError) as exc_info:
            _make_client().create_room("call-abc", max_participants=2, expires_at=EXPIRES)

        assert exc_info.value.status_code == 500
        assert exc_info.value.message == "upstream exploded"

    @patch("mentorline.integrations.daily_client.httpx.Client")
    def test_transport_error_raises_daily_error(self, mock_client_cls):
        mock_client = _client_returning(mock_client_cls)
        mock_client.request.side_effect = httpx.ConnectError("refused")

        with pytest.raises(DailyError) as exc_info:
            _make_client().create_room("call-abc", max_participants=2, expires_at=EXPIRES)

        assert exc_info.value.status_code is None

    @patch("mentorline.integrations.daily_client.httpx.Client")
    def test_secret_str_key_is_unwrapped(self, mock_client_cls):
        mock_client = _client_returning(
            mock_client_cls, _response(200, {"url": "https://mentorline.daily.co/x"})
        )
        _make_client(api_key=SecretStr("hidden")).create_room(
            "x", max_participants=2, expires_at=EXPIRES
        )
        assert mock_client.request.call_args[1]["headers"]["Authorization"] == "Bearer hidden"


class TestDeleteRoom:
    @patch("mentorline.integrations.daily_client.httpx.Client")
    def test_missing_room_is_not_an_error(self, mock_client_cls):
        _client_returning(mock_client_cls, _response(404, {"error": "not-found"}))
        _make_client().delete_room("call-abc")

    @patch("mentorline.integrations.daily_client.httpx.Client")
    def test_other_errors_propagate(self, mock_client_cls):
        _client_returning(mock_client_cls, _response(401, {"error": "authorization-error"}))
        with pytest.raises(DailyError) as exc_info:
            _make_client().delete_room("call-abc")
        assert exc_info.value.details == "authorization-error"


class TestFakeProvider:
    def test_create_is_deterministic_per_name(self):
        fake = FakeVideoRoomProvider()
        first = fake.create_room("group-1", max_participants=5, expires_at=EXPIRES)
        second = fake.create_room("group-1", max_participants=5, expires_at=EXPIRES)
        assert first == second == "https://mentorline.daily.co/group-1"
        assert [c["method"] for c in fake.calls] == ["create_room", "create_room"]

    def test_injected_error(self):
        fake = FakeVideoRoomProvider()
        fake.set_error("create_room", DailyError("down", status_code=503))
        with pytest.raises(DailyError):
            fake.create_room("group-1", max_participants=5, expires_at=EXPIRES)
        assert "group-1" not in fake.rooms

        fake.clear_errors()
        fake.create_room("group-1", max_participants=5, expires_at=EXPIRES)
        fake.delete_room("group-1")
        assert fake.rooms == {}
