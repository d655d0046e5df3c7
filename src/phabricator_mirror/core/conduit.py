"""Client for Phabricator's Conduit HTTP API.

Each call is a form POST to ``{url}/api/{method}`` with the parameters
JSON-encoded in ``params``. Conduit reports failures in the response body
(``error_code`` / ``error_info``) rather than through the HTTP status.
"""

from __future__ import annotations

import json
import logging
import threading
from typing import Any

import requests

from ..config import Config

logger = logging.getLogger(__name__)


class ConduitError(RuntimeError):
    """Raised when a Conduit method reports an error."""

    def __init__(self, method: str, code: str, info: str | None) -> None:
        super().__init__(f"{method} failed: {code}: {info}")
        self.method = method
        self.code = code
        self.info = info


class ConduitClient:
    def __init__(self, config: Config):
        self.config = config
        self._thread_local = threading.local()
        self.api_url = f"{config.phabricator_url.rstrip('/')}/api"

    @property
    def session(self) -> requests.Session:
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            session = requests.Session()
            session.verify = not self.config.insecure
            self._thread_local.session = session
        return self._thread_local.session

    def call(self, method: str, params: dict[str, Any] | None = None) -> Any:
        """
        Call a Conduit method and return its ``result``.

        Raises:
            ConduitError: If the method reports an error.
            requests.RequestException: On transport failures.
        """
        payload = dict(params or {})
        payload["__conduit__"] = {"token": self.config.api_token}

        logger.debug("Conduit call %s", method)
        response = self._get_session().post(
            f"{self.api_url}/{method}",
            data={
                "params": json.dumps(payload),
                "output": "json",
                "__conduit__": "1",
            },
            timeout=(10, 60),
        )
        response.raise_for_status()

        body = response.json()
        if body.get("error_code"):
            raise ConduitError(
                method, body["error_code"], body.get("error_info")
            )
        return body.get("result")

    def whoami(self) -> dict[str, Any]:
        """Return the user the API token belongs to."""
        return self.call("user.whoami")
