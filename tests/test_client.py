from datetime import datetime, timezone
from unittest.mock import Mock, patch

import pytest
import requests

from conftest import T0, make_crux
from garden_sync.config import Config
from garden_sync.core.client import CONNECT_TIMEOUT, GardenClient
from garden_sync.sync.models import CRUX_TABLE, PATH_TABLE, Crux, Path


def _response(status_code=200, payload=None):
    response = Mock()
    response.status_code = status_code
    response.json.return_value = payload
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(
            f"{status_code} Error"
        )
    else:
        response.raise_for_status.return_value = None
    return response


def _crux_json(crux_id, **fields):
    return {
        "id": crux_id,
        "created": "2024-01-01T00:00:00Z",
        "updated": "2024-01-01T00:05:00Z",
        **fields,
    }


@pytest.fixture
def client():
    return GardenClient("https://garden.example.com/", token="secret")


def test_base_url_trailing_slash_removed(client):
    assert client.base_url == "https://garden.example.com"


def test_session_has_bearer_token(client):
    assert client.session.headers["Authorization"] == "Bearer secret"
    assert client.session.verify


def test_session_without_token():
    client = GardenClient("https://garden.example.com")
    assert "Authorization" not in client.session.headers


def test_session_insecure():
    client = GardenClient("https://garden.example.com", insecure=True)
    assert not client.session.verify


def test_session_is_reused_per_thread(client):
    assert client.session is client.session


def test_from_config():
    config = Config(
        garden_url="https://garden.example.com",
        token="tok",
        insecure=True,
        timeout=5.0,
    )
    client = GardenClient.from_config(config)
    assert client.base_url == "https://garden.example.com"
    assert client.token == "tok"
    assert client.insecure
    assert client.timeout == 5.0


@patch("garden_sync.core.client.requests.Session.request")
def test_validate_connection(mock_request, client):
    mock_request.return_value = _response(payload={"version": "2.4.1"})

    assert client.validate_connection() == "2.4.1"

    args, kwargs = mock_request.call_args
    assert args == ("GET", "https://garden.example.com/health")
    assert kwargs["timeout"] == (CONNECT_TIMEOUT, 60.0)


@patch("garden_sync.core.client.requests.Session.request")
def test_validate_connection_unauthorized(mock_request, client):
    mock_request.return_value = _response(401)
    with pytest.raises(requests.HTTPError):
        client.validate_connection()


@patch("garden_sync.core.client.requests.Session.request")
def test_find_changed_since(mock_request, client):
    mock_request.return_value = _response(
        payload=[_crux_json("c1", title="hello", flavour="mint")]
    )

    rows = client.find_changed_since(CRUX_TABLE, T0)

    assert len(rows) == 1
    assert isinstance(rows[0], Crux)
    assert rows[0].title == "hello"
    assert rows[0].flavour == "mint"
    args, kwargs = mock_request.call_args
    assert args == ("GET", "https://garden.example.com/sync/cruxes/changes")
    assert kwargs["params"] == {"since": "2024-01-01T00:00:00+00:00"}


@patch("garden_sync.core.client.requests.Session.request")
def test_find_changed_since_page_params(mock_request, client):
    mock_request.return_value = _response(payload=[])
    after = (datetime(2024, 1, 1, 0, 5, tzinfo=timezone.utc), "c9")

    client.find_changed_since(CRUX_TABLE, T0, limit=50, after=after)

    assert mock_request.call_args.kwargs["params"] == {
        "since": "2024-01-01T00:00:00+00:00",
        "limit": 50,
        "after_updated": "2024-01-01T00:05:00+00:00",
        "after_id": "c9",
    }


@patch("garden_sync.core.client.requests.Session.request")
def test_find_changed_since_rejects_non_list(mock_request, client):
    mock_request.return_value = _response(payload={"rows": []})
    with pytest.raises(ValueError, match="Expected a JSON list"):
        client.find_changed_since(CRUX_TABLE, T0)


def test_find_changed_since_unknown_table(client):
    with pytest.raises(ValueError, match="Unknown table"):
        client.find_changed_since("themes", T0)


@patch("garden_sync.core.client.requests.Session.request")
def test_find_by_id(mock_request, client):
    mock_request.return_value = _response(
        payload={
            "id": "p1",
            "created": "2024-01-01T00:00:00Z",
            "updated": "2024-01-01T00:00:00Z",
            "entry": "c1",
            "markers": [
                {"id": "m1", "path_id": "p1", "crux_id": "c1", "order": 0}
            ],
        }
    )

    row = client.find_by_id(PATH_TABLE, "p1")

    assert isinstance(row, Path)
    assert row.markers[0].crux_id == "c1"
    assert mock_request.call_args.args == (
        "GET",
        "https://garden.example.com/sync/paths/p1",
    )


@patch("garden_sync.core.client.requests.Session.request")
def test_find_by_id_not_found(mock_request, client):
    mock_request.return_value = _response(404)
    assert client.find_by_id(CRUX_TABLE, "missing") is None


@patch("garden_sync.core.client.requests.Session.request")
def test_find_by_id_soft_deleted(mock_request, client):
    mock_request.return_value = _response(
        payload=_crux_json("c1", deleted="2024-01-02T00:00:00Z")
    )
    assert client.find_by_id(CRUX_TABLE, "c1") is None


@patch("garden_sync.core.client.requests.Session.request")
def test_find_by_id_server_error(mock_request, client):
    mock_request.return_value = _response(500)
    with pytest.raises(requests.HTTPError):
        client.find_by_id(CRUX_TABLE, "c1")


@patch("garden_sync.core.client.requests.Session.request")
def test_id_is_url_quoted(mock_request, client):
    mock_request.return_value = _response(404)
    client.find_by_id(CRUX_TABLE, "a/b c")
    assert mock_request.call_args.args[1] == (
        "https://garden.example.com/sync/cruxes/a%2Fb%20c"
    )


@patch("garden_sync.core.client.requests.Session.request")
def test_exists(mock_request, client):
    mock_request.return_value = _response(200)
    assert client.exists(CRUX_TABLE, "c1")
    assert mock_request.call_args.args[0] == "HEAD"

    mock_request.return_value = _response(404)
    assert not client.exists(CRUX_TABLE, "c1")


@patch("garden_sync.core.client.requests.Session.request")
def test_upsert_puts_json(mock_request, client):
    mock_request.return_value = _response(200)
    crux = make_crux("c1", updated=5, members=["c2"])

    client.upsert(CRUX_TABLE, crux)

    args, kwargs = mock_request.call_args
    assert args == ("PUT", "https://garden.example.com/sync/cruxes/c1")
    body = kwargs["json"]
    assert body["id"] == "c1"
    assert body["updated"] == "2024-01-01T00:05:00Z"
    assert body["members"] == ["c2"]


@patch("garden_sync.core.client.requests.Session.request")
def test_upsert_error_raises(mock_request, client):
    mock_request.return_value = _response(409)
    with pytest.raises(requests.HTTPError):
        client.upsert(CRUX_TABLE, make_crux("c1"))


@pytest.mark.live
def test_live_health():
    """Requires GARDEN_URL pointing at a running garden."""
    import os

    client = GardenClient(
        os.environ["GARDEN_URL"], token=os.getenv("GARDEN_TOKEN")
    )
    assert isinstance(client.validate_connection(), str)
