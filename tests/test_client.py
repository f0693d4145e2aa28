"""Tests for GazetteerClient in gazetteer_db.client."""

from unittest.mock import MagicMock, patch

import pytest

from gazetteer_db.client import GazetteerClient


def _make_client() -> tuple[GazetteerClient, MagicMock]:
    """Create a GazetteerClient with a mocked httpx module."""
    mock_httpx = MagicMock()
    with patch("gazetteer_db.client._get_httpx", return_value=mock_httpx):
        client = GazetteerClient("http://localhost:9999/")
    return client, mock_httpx


class TestGazetteerClient:
    def test_health(self):
        client, mock_httpx = _make_client()
        mock_resp = MagicMock()
        mock_resp.json.return_value = {"status": "ok"}
        mock_httpx.get.return_value = mock_resp

        result = client.health()

        assert result == {"status": "ok"}
        mock_httpx.get.assert_called_once_with("http://localhost:9999/", timeout=120)
        mock_resp.raise_for_status.assert_called_once()

    def test_resolve(self):
        client, mock_httpx = _make_client()
        mock_resp = MagicMock()
        mock_resp.json.return_value = {"place_id": 42, "strategy": "wikidata_qid", "distance": None}
        mock_httpx.post.return_value = mock_resp

        result = client.resolve(kind="city", wikidata_qid="Q90")

        assert result["place_id"] == 42
        mock_httpx.post.assert_called_once_with(
            "http://localhost:9999/resolve",
            json={"kind": "city", "wikidata_qid": "Q90"},
            timeout=120,
        )

    def test_resolve_no_match(self):
        client, mock_httpx = _make_client()
        mock_resp = MagicMock()
        mock_resp.json.return_value = None
        mock_httpx.post.return_value = mock_resp

        assert client.resolve(kind="city", name="Atlantis", country_code="FR") is None

    def test_predict_hubs(self):
        client, mock_httpx = _make_client()
        mock_resp = MagicMock()
        mock_resp.json.return_value = [{"url": "https://bbc.co.uk/world/france", "confidence": 0.85}]
        mock_httpx.post.return_value = mock_resp

        result = client.predict_hubs("bbc.co.uk", "France", code="FR", limit=5)

        assert result[0]["url"] == "https://bbc.co.uk/world/france"
        mock_httpx.post.assert_called_once_with(
            "http://localhost:9999/predict-hubs",
            json={"domain": "bbc.co.uk", "name": "France", "code": "FR", "kind": "country", "limit": 5},
            timeout=120,
        )

    def test_hub_gaps(self):
        client, mock_httpx = _make_client()
        mock_resp = MagicMock()
        mock_resp.json.return_value = {"missing": 5, "coverage_percent": 50}
        mock_httpx.post.return_value = mock_resp

        result = client.hub_gaps("bbc.co.uk", kind="city")

        assert result["coverage_percent"] == 50
        mock_httpx.post.assert_called_once_with(
            "http://localhost:9999/hub-gaps",
            json={"domain": "bbc.co.uk", "kind": "city"},
            timeout=120,
        )

    def test_http_error_propagates(self):
        client, mock_httpx = _make_client()
        mock_resp = MagicMock()
        mock_resp.raise_for_status.side_effect = RuntimeError("500 Server Error")
        mock_httpx.get.return_value = mock_resp

        with pytest.raises(RuntimeError, match="500"):
            client.health()
