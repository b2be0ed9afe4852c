from __future__ import annotations

import logging

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

LOGGER = logging.getLogger(__name__)

REQUEST_TIMEOUT = 15
RETRY_TOTAL = 2
RETRY_BACKOFF = 0.5
USER_AGENT = "partition-snapshot/0.1"


def build_session() -> requests.Session:
    session = requests.Session()
    retry = Retry(
        total=RETRY_TOTAL,
        backoff_factor=RETRY_BACKOFF,
        status_forcelist=(429, 500, 502, 503, 504),
        allowed_methods=("GET", "POST"),
    )
    adapter = HTTPAdapter(max_retries=retry)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    session.headers.update({"User-Agent": USER_AGENT})
    return session


class NotifyService:
    """Best-effort webhook alerts. Failures are logged, never raised."""

    def __init__(self, url: str, hostname: str, session: requests.Session | None = None) -> None:
        self.url = url
        self.hostname = hostname
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = build_session()
        return self._session

    def notify(self, message: str) -> bool:
        if not self.url:
            return False
        headers = {
            "Title": f"{self.hostname}: Partition Snapshot",
            "Priority": "urgent",
            "Tags": "rotating_light,skull",
        }
        try:
            response = self.session.post(
                self.url,
                data=message.encode("utf-8"),
                headers=headers,
                timeout=REQUEST_TIMEOUT,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            LOGGER.error("notification-url POST failed: %s", e)
            return False
        return True


class HeartbeatService:
    def __init__(self, url: str, session: requests.Session | None = None) -> None:
        self.url = url
        self._session = session

    @property
    def session(self) -> requests.Session:
        if self._session is None:
            self._session = build_session()
        return self._session

    def ping(self) -> bool:
        if not self.url:
            return False
        try:
            response = self.session.get(self.url, timeout=REQUEST_TIMEOUT)
            response.raise_for_status()
        except requests.RequestException as e:
            LOGGER.error("heartbeat-url failed: %s", e)
            return False
        LOGGER.debug("heartbeat sent to %s", self.url)
        return True
