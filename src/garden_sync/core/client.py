import threading
from datetime import datetime
from typing import Any
from urllib.parse import quote

import requests

from ..config import Config
from ..sync.models import TABLE_MODELS, SyncEntity, as_utc
from .repository import PageKey, check_table

CONNECT_TIMEOUT = 10


class GardenClient:
    """Repository backed by a garden's HTTP sync API.

    Rows travel as JSON objects and are validated into the table's model
    on the way in. A 404 on a by-id request means the row is absent; any
    other error status raises ``requests.HTTPError``.
    """

    def __init__(
        self,
        base_url: str,
        token: str | None = None,
        insecure: bool = False,
        timeout: float = 60.0,
    ):
        self.base_url = base_url.rstrip("/")
        self.token = token
        self.insecure = insecure
        self.timeout = timeout
        self._thread_local = threading.local()

    @classmethod
    def from_config(cls, config: Config) -> "GardenClient":
        return cls(
            config.garden_url,
            token=config.token,
            insecure=config.insecure,
            timeout=config.timeout,
        )

    @property
    def session(self) -> requests.Session:
        """The current thread's session."""
        return self._get_session()

    def _get_session(self) -> requests.Session:
        """Get or create a thread-local requests.Session."""
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = self._create_session()
        return self._thread_local.session

    def _create_session(self) -> requests.Session:
        session = requests.Session()
        if self.token:
            session.headers["Authorization"] = f"Bearer {self.token}"
        session.headers["Accept"] = "application/json"
        session.verify = not self.insecure
        return session

    def _url(self, *parts: str) -> str:
        return "/".join(
            [self.base_url] + [quote(p, safe="") for p in parts]
        )

    def _request(
        self, method: str, url: str, **kwargs: Any
    ) -> requests.Response:
        return self._get_session().request(
            method,
            url,
            timeout=(CONNECT_TIMEOUT, self.timeout),
            **kwargs,
        )

    def _parse_row(self, table: str, data: dict[str, Any]) -> SyncEntity:
        return TABLE_MODELS[table].model_validate(data)  # type: ignore[return-value]

    def validate_connection(self) -> str:
        """
        Call the garden's health endpoint and return its reported version.
        """
        response = self._request("GET", self._url("health"))
        response.raise_for_status()
        payload = response.json()
        return str(payload.get("version", "")) if isinstance(payload, dict) else ""

    # ------------------------------------------------------------------
    # Repository protocol
    # ------------------------------------------------------------------

    def find_changed_since(
        self,
        table: str,
        since: datetime,
        limit: int | None = None,
        after: PageKey | None = None,
    ) -> list[SyncEntity]:
        """
        Fetch non-deleted rows updated after *since*, ordered by (updated, id).
        """
        check_table(table)
        params: dict[str, Any] = {"since": as_utc(since).isoformat()}
        if limit is not None:
            params["limit"] = limit
        if after is not None:
            params["after_updated"] = as_utc(after[0]).isoformat()
            params["after_id"] = after[1]

        response = self._request(
            "GET", self._url("sync", table, "changes"), params=params
        )
        response.raise_for_status()
        payload = response.json()
        if not isinstance(payload, list):
            raise ValueError(
                f"Expected a JSON list of {table} rows, got {type(payload).__name__}"
            )
        return [self._parse_row(table, item) for item in payload]

    def find_by_id(self, table: str, entity_id: str) -> SyncEntity | None:
        """
        Fetch one row by id; None when the garden answers 404.
        """
        check_table(table)
        response = self._request("GET", self._url("sync", table, entity_id))
        if response.status_code == 404:
            return None
        response.raise_for_status()
        row = self._parse_row(table, response.json())
        return None if row.deleted is not None else row

    def exists(self, table: str, entity_id: str) -> bool:
        """
        HEAD the row; 200 means present, 404 absent.
        """
        check_table(table)
        response = self._request("HEAD", self._url("sync", table, entity_id))
        if response.status_code == 404:
            return False
        response.raise_for_status()
        return True

    def upsert(self, table: str, row: SyncEntity) -> None:
        """
        PUT the row at its id, keeping the caller's created/updated.
        """
        check_table(table)
        response = self._request(
            "PUT",
            self._url("sync", table, row.id),
            json=row.model_dump(mode="json"),
        )
        response.raise_for_status()
