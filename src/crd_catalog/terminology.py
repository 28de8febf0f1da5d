"""
Value Set Cache

External terminology loader. Expands value sets by canonical URL against a
FHIR terminology server (VSAC by default) and stores the expansions as
shared R4 resources so the next reload indexes them:

    <cache_dir>/R4/resources/ValueSet-R4-<id>.json
    <cache_dir>/R4/.valueset-cache.json   (canonical url -> filename)
"""

from pathlib import Path
from typing import Dict, List, Optional, Tuple
import json
import os
import re
import threading

import httpx
import structlog

from crd_catalog.config import TerminologySettings
from crd_catalog.errors import TerminologyError

logger = structlog.get_logger(__name__)

Credentials = Tuple[str, str]


class ValueSetCache:
    """
    Cache of expanded value sets fetched from a terminology server.

    Usage:
        cache = ValueSetCache(settings, cache_dir=Path("CDS-Library/Shared"))
        cache.reinitialize(("user", "secret"))
        cache.fetch("http://cts.nlm.nih.gov/fhir/ValueSet/2.16.840.1.113762.1.4.1219.35")
    """

    FHIR_VERSION = "R4"
    INDEX_FILENAME = ".valueset-cache.json"

    def __init__(
        self,
        settings: Optional[TerminologySettings] = None,
        cache_dir: Optional[Path] = None,
        transport: Optional[httpx.BaseTransport] = None,
    ):
        self.settings = settings or TerminologySettings()
        self.cache_dir = Path(cache_dir or self.settings.cache_dir or "ValueSetCache")
        self._transport = transport
        self._client: Optional[httpx.Client] = None
        self._lock = threading.Lock()

    @property
    def resources_dir(self) -> Path:
        return self.cache_dir / self.FHIR_VERSION / "resources"

    @property
    def index_path(self) -> Path:
        return self.cache_dir / self.FHIR_VERSION / self.INDEX_FILENAME

    @property
    def initialized(self) -> bool:
        return self._client is not None

    def reinitialize(self, credentials: Optional[Credentials] = None) -> None:
        """Replace the HTTP client, using explicit credentials or the configured ones."""
        auth = credentials
        if auth is None and self.settings.has_credentials:
            auth = (self.settings.username, self.settings.password.get_secret_value())

        client = httpx.Client(
            base_url=self.settings.base_url,
            auth=auth,
            timeout=self.settings.timeout,
            transport=self._transport,
            headers={"Accept": "application/fhir+json"},
        )
        with self._lock:
            previous, self._client = self._client, client
        if previous is not None:
            previous.close()
        logger.info(
            "Terminology loader initialized",
            base_url=self.settings.base_url,
            authenticated=auth is not None,
        )

    def close(self) -> None:
        with self._lock:
            client, self._client = self._client, None
        if client is not None:
            client.close()

    def cached_urls(self) -> Dict[str, str]:
        """Canonical url -> cached filename."""
        if not self.index_path.is_file():
            return {}
        try:
            index = json.loads(self.index_path.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            logger.warning("Value set cache index unreadable", path=str(self.index_path), error=str(e))
            return {}
        return index if isinstance(index, dict) else {}

    def fetch(self, url: str) -> str:
        """
        Expand one value set and store it in the cache.

        Returns:
            The cached filename

        Raises:
            TerminologyError: loader not initialized, HTTP failure, or bad payload
        """
        client = self._client
        if client is None:
            raise TerminologyError("terminology loader is not initialized")

        try:
            response = client.get("ValueSet/$expand", params={"url": url})
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            raise TerminologyError(f"expansion of {url} failed: {e}") from e
        except ValueError as e:
            raise TerminologyError(f"expansion of {url} returned invalid JSON") from e

        if not isinstance(data, dict) or data.get("resourceType") != "ValueSet":
            raise TerminologyError(f"expansion of {url} did not return a ValueSet")

        data.setdefault("url", url)
        filename = f"ValueSet-{self.FHIR_VERSION}-{_file_id(data.get('id'), url)}.json"
        self._write(self.resources_dir / filename, json.dumps(data, indent=2))

        with self._lock:
            index = self.cached_urls()
            index[url] = filename
            self._write(self.index_path, json.dumps(index, indent=2, sort_keys=True))

        logger.info("Cached value set", url=url, filename=filename)
        return filename

    def refresh(self, extra_urls: Optional[List[str]] = None) -> Dict[str, str]:
        """
        Re-fetch every cached url plus configured and extra prefetch urls.

        Individual failures are logged and leave the previous cached file
        in place.

        Returns:
            url -> filename for the expansions fetched in this pass

        Raises:
            TerminologyError: the loader is not initialized
        """
        if self._client is None:
            raise TerminologyError("terminology loader is not initialized")

        urls = sorted(
            set(self.cached_urls()) | set(self.settings.prefetch_urls) | set(extra_urls or [])
        )
        fetched: Dict[str, str] = {}
        for url in urls:
            try:
                fetched[url] = self.fetch(url)
            except TerminologyError as e:
                logger.warning("Value set refresh failed, keeping cached copy", url=url, error=e.message)
        logger.info("Value set cache refreshed", requested=len(urls), fetched=len(fetched))
        return fetched

    @staticmethod
    def _write(path: Path, text: str) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        temp = path.with_name(f".{path.name}.tmp")
        temp.write_text(text, encoding="utf-8")
        os.replace(temp, path)


def _file_id(resource_id: Optional[str], url: str) -> str:
    candidate = resource_id or url.rstrip("/").rsplit("/", 1)[-1]
    cleaned = re.sub(r"[^A-Za-z0-9.\-]", "", candidate)
    return cleaned or "valueset"
