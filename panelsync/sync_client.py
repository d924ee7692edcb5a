# -*- coding: utf-8 -*-
"""
Sync HTTP Client

Talks JSON over HTTP to the remote system of record. The client reports
what the server answered; deciding what a status code means for the queue
is the orchestrator's job.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Optional
from urllib.parse import urljoin

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from .config import SyncSettings
from .endpoints import RemoteRequest
from .errors import NetworkError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RemoteResponse:
    """What the server answered"""
    status: int
    status_text: str = ""
    body: Any = None

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300


class SyncClient:
    """
    Remote service HTTP client.

    Features:
    - Shared session with default JSON headers and optional bearer token
    - Transport level retry for idempotent verbs (urllib3 Retry)
    - Idempotency-Key header so the server can drop resubmissions
    """

    def __init__(self, base_url: str, api_token: Optional[str] = None,
                 timeout: float = 15.0, retries: int = 2, backoff_factor: float = 0.5,
                 session: Optional[requests.Session] = None):
        """
        Args:
            base_url: Remote service root, e.g. https://mes.example.com
            api_token: Bearer token (optional)
            timeout: Per-request timeout in seconds
            retries: Transport retries on 502/503/504 and connection errors
            backoff_factor: urllib3 backoff factor
            session: Pre-built session (tests)
        """
        self.base_url = base_url.rstrip('/') + '/'
        self.api_token = api_token
        self.timeout = timeout
        self._session = session or self._create_session(retries, backoff_factor)

    @classmethod
    def from_settings(cls, settings: SyncSettings) -> 'SyncClient':
        return cls(
            base_url=settings.API_BASE_URL,
            api_token=settings.API_TOKEN,
            timeout=settings.REQUEST_TIMEOUT,
            retries=settings.HTTP_RETRIES,
            backoff_factor=settings.HTTP_BACKOFF_FACTOR,
        )

    def _create_session(self, retries: int, backoff_factor: float) -> requests.Session:
        """Session with a retrying adapter"""
        session = requests.Session()

        # POST is not idempotent and is left to the queue level retry.
        # raise_on_status=False hands the last 5xx back for classification.
        retry_strategy = Retry(
            total=retries,
            backoff_factor=backoff_factor,
            status_forcelist=[502, 503, 504],
            allowed_methods=frozenset({'GET', 'PUT', 'DELETE'}),
            raise_on_status=False,
        )

        adapter = HTTPAdapter(max_retries=retry_strategy)
        session.mount("http://", adapter)
        session.mount("https://", adapter)

        session.headers.update({
            'Content-Type': 'application/json',
            'Accept': 'application/json',
        })
        if self.api_token:
            session.headers['Authorization'] = f'Bearer {self.api_token}'

        return session

    def _get_url(self, path: str) -> str:
        return urljoin(self.base_url, path.lstrip('/'))

    def send(self, request: RemoteRequest, idempotency_key: Optional[str] = None) -> RemoteResponse:
        """
        Issue a request.

        Args:
            request: Verb, path and optional JSON body
            idempotency_key: Queue item id

        Returns:
            RemoteResponse for any HTTP status

        Raises:
            NetworkError: No response was received
        """
        headers: Dict[str, str] = {}
        if idempotency_key:
            headers['Idempotency-Key'] = idempotency_key

        try:
            response = self._session.request(
                request.method,
                self._get_url(request.path),
                json=request.body,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            logger.warning(f"{request.method} {request.path} failed: {e}")
            raise NetworkError(str(e)) from e

        return RemoteResponse(
            status=response.status_code,
            status_text=response.reason or "",
            body=self._decode_body(response),
        )

    @staticmethod
    def _decode_body(response: requests.Response) -> Any:
        if not response.content:
            return None
        try:
            return response.json()
        except ValueError:
            return response.text

    def check_connection(self) -> bool:
        """
        Probe the remote health endpoint.

        Returns:
            True if the service answered 200
        """
        try:
            response = self._session.get(self._get_url('/api/health'), timeout=5)
            return response.status_code == 200
        except requests.RequestException as e:
            logger.warning(f"Connection check failed: {e}")
            return False

    def close(self):
        self._session.close()
