"""HTTP retrieval of external modules for the bundler."""

from __future__ import annotations

import logging
from dataclasses import dataclass

import requests

from runner_core.errors import BundleError

logger = logging.getLogger(__name__)

DEFAULT_FETCH_TIMEOUT_S = 30.0


@dataclass(frozen=True)
class FetchedModule:
    url: str  # final URL after redirects; relative requires resolve against it
    text: str


class ModuleFetcher:
    """Fetches module sources once per URL.

    One fetcher is created per bundling pass, so the cache never outlives the
    pass that filled it.
    """

    def __init__(self, session: requests.Session | None = None, timeout: float = DEFAULT_FETCH_TIMEOUT_S) -> None:
        self.session = session or requests.Session()
        self.timeout = timeout
        self._cache: dict[str, FetchedModule] = {}

    def fetch(self, url: str) -> FetchedModule:
        """Return the module at ``url``.

        Raises:
            BundleError: On any transport failure or non-2xx status
        """
        cached = self._cache.get(url)
        if cached is not None:
            return cached

        logger.debug(f"Fetching module {url}")
        try:
            resp = self.session.get(url, timeout=self.timeout)
            resp.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise BundleError(f"Failed to fetch {url}: {e}", url) from e

        module = FetchedModule(url=resp.url or url, text=resp.text)
        self._cache[url] = module
        return module

    @property
    def fetched_urls(self) -> list[str]:
        return list(self._cache)
