from unittest.mock import MagicMock, patch

import pytest
import requests

from services import geocoding as geo
from services.geocoding import format_location, reverse_geocode_address


@pytest.fixture(autouse=True)
def _no_throttle(monkeypatch):
    monkeypatch.setattr(geo, "_MIN_INTERVAL_SEC", 0.0)
    reverse_geocode_address.cache_clear()
    yield
    reverse_geocode_address.cache_clear()


def _response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    return resp


@patch("services.geocoding._session.get")
def test_reverse_geocode_address_returns_display_name(mock_get):
    mock_get.return_value = _response({"display_name": " Rua Augusta 100, Lisboa, Portugal "})

    address = reverse_geocode_address(38.7101234567, -9.1367)

    assert address == "Rua Augusta 100, Lisboa, Portugal"
    params = mock_get.call_args.kwargs["params"]
    assert params["lat"] == "38.71012"
    assert params["format"] == "jsonv2"
    assert "User-Agent" in mock_get.call_args.kwargs["headers"]


@patch("services.geocoding._session.get")
def test_reverse_geocode_address_is_memoized(mock_get):
    mock_get.return_value = _response({"display_name": "Chicago, Illinois"})

    assert reverse_geocode_address(41.88, -87.63) == "Chicago, Illinois"
    assert reverse_geocode_address(41.88, -87.63) == "Chicago, Illinois"
    assert mock_get.call_count == 1


@patch("services.geocoding._session.get")
def test_reverse_geocode_address_none_without_display_name(mock_get):
    mock_get.return_value = _response({"error": "Unable to geocode"})
    assert reverse_geocode_address(0.0, 0.0) is None


@patch("services.geocoding._session.get")
def test_reverse_geocode_address_none_on_network_error(mock_get):
    mock_get.side_effect = requests.ConnectionError("offline")
    assert reverse_geocode_address(1.0, 2.0) is None


@patch("services.geocoding._session.get")
def test_reverse_geocode_address_none_on_bad_json(mock_get):
    resp = MagicMock()
    resp.json.side_effect = ValueError("not json")
    mock_get.return_value = resp
    assert reverse_geocode_address(3.0, 4.0) is None


def test_redact_email_hides_contact():
    assert geo._redact_email("frame/1.0 (me@example.com)") == "frame/1.0 <redacted>"
    assert geo._redact_email("frame/1.0") == "frame/1.0"


class TestFormatLocation:
    def test_short_address_is_unchanged(self):
        assert format_location("Lisboa, Portugal") == "Lisboa, Portugal"

    def test_long_address_without_commas_is_unchanged(self):
        text = "A very long place name without any separators at all"
        assert format_location(text) == text

    def test_long_address_splits_in_two_lines(self):
        text = "Rua Augusta 100, Baixa, Lisboa, 1100-053, Portugal"
        assert format_location(text) == "Rua Augusta 100, Baixa,\nLisboa, 1100-053, Portugal"

    def test_split_keeps_every_part(self):
        text = "Museu Nacional de Arte Antiga, Rua das Janelas Verdes, Lisboa, Portugal"
        result = format_location(text)
        assert result.count("\n") == 1
        assert result.replace(",\n", ", ") == text


def test_rate_limit_and_user_agent_come_from_settings():
    from settings import settings

    assert geo.NOMINATIM_USER_AGENT == settings.NOMINATIM_USER_AGENT
    assert geo.NOMINATIM_HEADERS["User-Agent"] == (settings.NOMINATIM_USER_AGENT or geo.FALLBACK_UA)
