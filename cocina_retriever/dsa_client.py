"""
Cocina Druid Retriever - Dor Services App client.

Fetches the cocina JSON for a druid. Every call yields a CocinaResponse,
including requests that never reached the server: those come back with
status 0 and the exception in the reason phrase, so callers can classify
and record them like any other failure.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field

import requests

from cocina_retriever.constants import (
    DEFAULT_DSA_URL,
    DEFAULT_REQUEST_TIMEOUT_SECONDS,
    DRUID_PREFIX,
    DSA_OBJECT_PATH,
    HTTP_OK,
    TRANSPORT_ERROR_STATUS,
)

logger = logging.getLogger(__name__)

_USER_AGENT = "cocina-druid-retriever/1.0"


@dataclass
class CocinaResponse:
    """Response from the DSA object endpoint (or a transport failure shaped like one)."""

    status: int
    reason_phrase: str = ""
    headers: dict[str, str] = field(default_factory=dict)
    body: str = ""

    @property
    def ok(self) -> bool:
        return self.status == HTTP_OK

    @classmethod
    def from_requests(cls, resp: requests.Response) -> "CocinaResponse":
        return cls(
            status=resp.status_code,
            reason_phrase=resp.reason or "",
            headers=dict(resp.headers),
            body=resp.text,
        )

    @classmethod
    def from_exception(cls, exc: Exception) -> "CocinaResponse":
        return cls(
            status=TRANSPORT_ERROR_STATUS,
            reason_phrase=f"{type(exc).__name__}: {exc}",
        )


def _object_url(base_url: str, druid: str) -> str:
    if not druid.startswith(DRUID_PREFIX):
        druid = f"{DRUID_PREFIX}{druid}"
    return base_url.rstrip("/") + DSA_OBJECT_PATH.format(druid=druid)


class DsaClient:
    """Thin wrapper over requests for the DSA ``/v1/objects/<druid>`` endpoint."""

    def __init__(
        self,
        base_url: str = DEFAULT_DSA_URL,
        token: str = "",
        timeout: float = DEFAULT_REQUEST_TIMEOUT_SECONDS,
        session: requests.Session | None = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update(
            {"User-Agent": _USER_AGENT, "Accept": "application/json"}
        )
        token = (token or "").strip()
        if token:
            self.session.headers["Authorization"] = f"Bearer {token}"

    @classmethod
    def from_config(cls, config: dict) -> "DsaClient":
        dsa = config.get("dsa", {})
        return cls(
            base_url=dsa.get("url", DEFAULT_DSA_URL),
            token=dsa.get("token", ""),
            timeout=dsa.get("request_timeout", DEFAULT_REQUEST_TIMEOUT_SECONDS),
        )

    def object_show(self, druid: str) -> CocinaResponse:
        """GET the cocina for ``druid``. Never raises for transport failures."""
        url = _object_url(self.base_url, druid)
        logger.debug("GET %s", url)
        try:
            resp = self.session.get(url, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.debug("Request to %s failed: %s", url, exc)
            return CocinaResponse.from_exception(exc)
        return CocinaResponse.from_requests(resp)
