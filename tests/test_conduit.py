import json
import os
from unittest.mock import Mock, patch

import pytest
import requests

from phabricator_mirror.config import Config
from phabricator_mirror.core.conduit import ConduitClient, ConduitError


def _response(body: dict) -> Mock:
    response = Mock()
    response.status_code = 200
    response.json.return_value = body
    response.raise_for_status.return_value = None
    return response


# TestConduitClient tests
def test_api_url_construction(mock_config):
    """Test that the API URL is built from the instance URL."""
    client = ConduitClient(mock_config)
    assert client.api_url == "https://phabricator.example.com/api"


def test_api_url_construction_with_trailing_slash():
    """Test API URL construction when the base URL ends with a slash."""
    config = Config(
        phabricator_url="https://phabricator.example.com/",
        api_token="api-x",
    )
    client = ConduitClient(config)
    assert client.api_url == "https://phabricator.example.com/api"


def test_session_creation_secure(mock_config):
    """Test that SSL verification is on by default."""
    client = ConduitClient(mock_config)
    assert client.session.verify


def test_session_creation_insecure():
    """Test that SSL verification is disabled in insecure mode."""
    config = Config(
        phabricator_url="https://phabricator.example.com",
        api_token="api-x",
        insecure=True,
    )
    client = ConduitClient(config)
    assert not client.session.verify


def test_session_is_reused(mock_config):
    """Test that a thread keeps using the same session."""
    client = ConduitClient(mock_config)
    assert client.session is client.session


@patch("phabricator_mirror.core.conduit.requests.Session.post")
def test_call_success(mock_post, mock_config):
    """Test that call() posts the token with the params and returns result."""
    mock_post.return_value = _response(
        {"result": {"phid": "PHID-USER-x"}, "error_code": None}
    )
    client = ConduitClient(mock_config)

    result = client.call("user.query", {"emails": ["a@example.com"]})

    assert result == {"phid": "PHID-USER-x"}
    args, kwargs = mock_post.call_args
    assert args[0] == "https://phabricator.example.com/api/user.query"
    assert kwargs["timeout"] == (10, 60)
    assert kwargs["data"]["output"] == "json"
    assert kwargs["data"]["__conduit__"] == "1"
    params = json.loads(kwargs["data"]["params"])
    assert params["emails"] == ["a@example.com"]
    assert params["__conduit__"] == {"token": "api-testtoken"}


@patch("phabricator_mirror.core.conduit.requests.Session.post")
def test_call_does_not_modify_params(mock_post, mock_config):
    """Test that the caller's params dict is left untouched."""
    mock_post.return_value = _response({"result": []})
    params = {"ids": [1]}

    ConduitClient(mock_config).call("differential.querydiffs", params)

    assert params == {"ids": [1]}


@patch("phabricator_mirror.core.conduit.requests.Session.post")
def test_call_error_code_raises(mock_post, mock_config):
    """Test that an error reported in the body raises ConduitError."""
    mock_post.return_value = _response(
        {
            "result": None,
            "error_code": "ERR-INVALID-AUTH",
            "error_info": "API token is invalid.",
        }
    )
    client = ConduitClient(mock_config)

    with pytest.raises(ConduitError) as exc_info:
        client.call("user.whoami")

    assert exc_info.value.method == "user.whoami"
    assert exc_info.value.code == "ERR-INVALID-AUTH"
    assert "API token is invalid." in str(exc_info.value)


@patch("phabricator_mirror.core.conduit.requests.Session.post")
def test_call_http_error_propagates(mock_post, mock_config):
    """Test that HTTP failures surface as requests exceptions."""
    response = Mock()
    response.raise_for_status.side_effect = requests.HTTPError("502")
    mock_post.return_value = response

    with pytest.raises(requests.HTTPError):
        ConduitClient(mock_config).call("user.whoami")


@patch("phabricator_mirror.core.conduit.requests.Session.post")
def test_whoami(mock_post, mock_config):
    """Test that whoami() calls user.whoami."""
    mock_post.return_value = _response({"result": {"userName": "mirror"}})

    assert ConduitClient(mock_config).whoami() == {"userName": "mirror"}
    assert mock_post.call_args[0][0].endswith("/api/user.whoami")


@pytest.mark.live
def test_live_whoami():
    """Test the configured token against a live Phabricator instance."""
    config = Config(
        phabricator_url=os.environ["PHABRICATOR_URL"],
        api_token=os.environ["PHABRICATOR_API_TOKEN"],
    )
    user = ConduitClient(config).whoami()
    assert user["phid"].startswith("PHID-USER-")
