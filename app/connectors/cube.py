"""
Cube.js Query Backend

Posts ``QueryRequest``s to a Cube.js REST API. Long-running queries answer
``{"error": "Continue wait"}``; the client polls until data arrives or the
configured wait budget runs out.
"""
import json
import time
from typing import Any, Callable, Dict, List, Optional

import requests

from app.config import get_settings
from app.connectors.base import QueryBackend, QueryRequest
from app.exceptions import QueryBackendError
from app.utils.logger import log

CONTINUE_WAIT = "Continue wait"


class CubeQueryBackend(QueryBackend):
    """
    Cube.js REST connector

    Args:
        api_url: Base API url, e.g. ``http://cube:4000/cubejs-api/v1``
        api_token: Token sent as the ``Authorization`` header
        session: Optional ``requests.Session`` (shared connection pool)
        sleep: Injectable sleep used between "Continue wait" polls
    """

    def __init__(
        self,
        api_url: Optional[str] = None,
        api_token: Optional[str] = None,
        request_timeout: Optional[float] = None,
        continue_wait_interval: Optional[float] = None,
        max_wait: Optional[float] = None,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        settings = get_settings()
        self.api_url = (api_url or settings.cube_api_url).rstrip("/")
        self.api_token = api_token if api_token is not None else settings.cube_api_token
        self.request_timeout = request_timeout or settings.cube_request_timeout_seconds
        self.continue_wait_interval = (
            continue_wait_interval
            if continue_wait_interval is not None
            else settings.cube_continue_wait_seconds
        )
        self.max_wait = max_wait if max_wait is not None else settings.cube_max_wait_seconds
        self.session = session or requests.Session()
        self._sleep = sleep

        self.headers = {
            "Content-Type": "application/json",
            "Accept": "application/json",
        }
        if self.api_token:
            self.headers["Authorization"] = self.api_token

    def load(self, request: QueryRequest) -> List[Dict[str, Any]]:
        payload = {"query": request.to_payload()}
        waited = 0.0

        while True:
            body = self._post(payload)

            if body.get("error") == CONTINUE_WAIT:
                if waited >= self.max_wait:
                    raise QueryBackendError(
                        f"Query on {request.measure} still pending after {waited:.0f}s"
                    )
                self._sleep(self.continue_wait_interval)
                waited += self.continue_wait_interval
                continue

            if body.get("error"):
                raise QueryBackendError(f"Query backend error: {body['error']}")

            data = body.get("data")
            if data is None:
                raise QueryBackendError("Query backend response has no 'data'")

            log.debug(f"Cube query {request.measure} by {request.time_dimension}: {len(data)} rows")
            return data

    def _post(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            response = self.session.post(
                f"{self.api_url}/load",
                headers=self.headers,
                data=json.dumps(payload),
                timeout=self.request_timeout,
            )
        except requests.RequestException as e:
            raise QueryBackendError(f"Query backend unreachable: {e}") from e

        if response.status_code >= 400:
            raise QueryBackendError(
                f"Query backend returned {response.status_code}: {response.text[:500]}",
                status_code=response.status_code,
            )

        try:
            return response.json()
        except ValueError as e:
            raise QueryBackendError(f"Query backend returned invalid JSON: {e}") from e
