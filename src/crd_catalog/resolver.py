"""
Resource Resolver

Looks up FHIR resources by id, by name (optionally within a topic) or by
canonical URL, picks exactly one match deterministically (first in catalog
order), and loads the backing file. Format conversion is delegated to an
injected ResourceConverter.
"""

from abc import ABC, abstractmethod
from typing import Iterable, Optional

import structlog

from crd_catalog.catalog import CatalogSnapshot
from crd_catalog.config import CatalogSettings
from crd_catalog.models import FhirResource, FhirResourceCriteria, FileResource
from crd_catalog.storage import FileStore

logger = structlog.get_logger(__name__)


MEDIA_TYPES = {
    "json": "application/fhir+json",
    "xml": "application/fhir+xml",
    "cql": "text/cql",
}


def media_type_for(filename: str) -> str:
    extension = filename.rsplit(".", 1)[-1].lower() if "." in filename else ""
    return MEDIA_TYPES.get(extension, "application/octet-stream")


# =============================================================================
# Conversion
# =============================================================================

class ResourceConverter(ABC):
    """Converts artifact content before it is served (e.g. CQL -> ELM)."""

    @abstractmethod
    def convert(self, file: FileResource, base_url: Optional[str] = None) -> FileResource:
        pass


class PassthroughConverter(ResourceConverter):
    """Serves files unchanged."""

    def convert(self, file: FileResource, base_url: Optional[str] = None) -> FileResource:
        return file


# =============================================================================
# Resolver
# =============================================================================

class ResourceResolver:
    """
    Resource lookups against one published snapshot.

    Usage:
        resolver = ResourceResolver(snapshot, store)
        resource = resolver.find_by_id("R4", "questionnaire", "HomeOxygenTherapy")
        file = resolver.load(resource)
    """

    def __init__(
        self,
        snapshot: CatalogSnapshot,
        store: FileStore,
        settings: Optional[CatalogSettings] = None,
        converter: Optional[ResourceConverter] = None,
    ):
        self._snapshot = snapshot
        self._store = store
        self.settings = settings or CatalogSettings()
        self.converter = converter or PassthroughConverter()

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def find(self, criteria: FhirResourceCriteria) -> Optional[FhirResource]:
        """Dispatch on whichever lookup key the criteria carries."""
        if criteria.id is not None:
            return self.find_by_id(criteria.fhir_version, criteria.resource_type, criteria.id, criteria.topic)
        if criteria.name is not None:
            return self.find_by_name(criteria.fhir_version, criteria.resource_type, criteria.name, criteria.topic)
        if criteria.url is not None:
            return self.find_by_url(criteria.fhir_version, criteria.resource_type, criteria.url, self.settings.base_url)
        raise ValueError("criteria needs an id, name or url")

    def find_by_id(
        self,
        fhir_version: Optional[str],
        resource_type: Optional[str],
        resource_id: str,
        topic: Optional[str] = None,
    ) -> Optional[FhirResource]:
        criteria = self._criteria(fhir_version, resource_type, topic).where(id=resource_id.lower())
        wanted = {criteria.id}
        if criteria.resource_type and "/" not in criteria.id:
            wanted.add(f"{criteria.resource_type}/{criteria.id}")
        return self._first(
            criteria,
            (r for r in self._candidates(criteria) if r.id in wanted),
        )

    def find_by_name(
        self,
        fhir_version: Optional[str],
        resource_type: Optional[str],
        name: str,
        topic: Optional[str] = None,
    ) -> Optional[FhirResource]:
        criteria = self._criteria(fhir_version, resource_type, topic).where(name=name.lower())
        return self._first(
            criteria,
            (r for r in self._candidates(criteria) if r.name == criteria.name),
        )

    def find_by_url(
        self,
        fhir_version: Optional[str],
        resource_type: Optional[str],
        url: str,
        own_base_url: Optional[str] = None,
    ) -> Optional[FhirResource]:
        """
        Canonical URL lookup.

        URLs under this service's base URL are reduced to the id after the
        "<ResourceType>/" segment. Any other URL is matched literally against
        the stored canonical url, then against name and id.
        """
        if own_base_url and url.startswith(own_base_url) and resource_type:
            marker = f"{resource_type.lower()}/"
            position = url.lower().rfind(marker, len(own_base_url) - 1)
            if position == -1:
                logger.info("URL has no resource type segment", url=url, resource_type=resource_type)
                return None
            resource_id = url[position + len(marker):].split("?", 1)[0].strip("/")
            if not resource_id:
                return None
            return self.find_by_id(fhir_version, resource_type, resource_id)

        criteria = self._criteria(fhir_version, resource_type, None).where(url=url)
        lowered = url.lower()
        return self._first(
            criteria,
            (
                r for r in self._candidates(criteria)
                if r.url == url or r.name == lowered or r.id == lowered
            ),
        )

    # -------------------------------------------------------------------------
    # Loading
    # -------------------------------------------------------------------------

    def load(
        self,
        resource: FhirResource,
        convert: bool = False,
        base_url: Optional[str] = None,
    ) -> FileResource:
        """
        Read the file behind a resource record.

        Raises:
            FileNotFoundError: the file disappeared after indexing
        """
        content = self._store.read_file(
            resource.topic,
            resource.fhir_version,
            self.settings.resources_folder,
            resource.filename,
        )
        file = FileResource(
            filename=resource.filename,
            content=content,
            media_type=media_type_for(resource.filename),
        )
        return self.converter.convert(file, base_url) if convert else file

    def get_resource_by_id(self, fhir_version, resource_type, resource_id, base_url=None) -> Optional[FileResource]:
        return self._load_optional(self.find_by_id(fhir_version, resource_type, resource_id), base_url)

    def get_resource_by_name(self, fhir_version, resource_type, name, topic=None, base_url=None) -> Optional[FileResource]:
        return self._load_optional(self.find_by_name(fhir_version, resource_type, name, topic), base_url)

    def get_resource_by_url(self, fhir_version, resource_type, url, own_base_url) -> Optional[FileResource]:
        return self._load_optional(
            self.find_by_url(fhir_version, resource_type, url, own_base_url),
            own_base_url,
        )

    def get_file(
        self,
        topic: str,
        fhir_version: str,
        filename: str,
        convert: bool = True,
    ) -> Optional[FileResource]:
        """Serve an artifact from <topic>/<version>/files, converting unless told not to."""
        try:
            content = self._store.read_file(topic, fhir_version, self.settings.files_folder, filename)
        except FileNotFoundError:
            logger.info("File not found", topic=topic, fhir_version=fhir_version, filename=filename)
            return None
        file = FileResource(filename=filename, content=content, media_type=media_type_for(filename))
        return self.converter.convert(file) if convert else file

    # -------------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------------

    @staticmethod
    def _criteria(
        fhir_version: Optional[str],
        resource_type: Optional[str],
        topic: Optional[str],
    ) -> FhirResourceCriteria:
        return FhirResourceCriteria(
            fhir_version=fhir_version.upper() if fhir_version else None,
            resource_type=resource_type.lower() if resource_type else None,
            topic=topic,
        )

    def _candidates(self, criteria: FhirResourceCriteria) -> Iterable[FhirResource]:
        for resource in self._snapshot.resources_for(criteria.fhir_version, criteria.resource_type):
            if criteria.matches_filters(resource):
                yield resource

    def _first(
        self,
        criteria: FhirResourceCriteria,
        matches: Iterable[FhirResource],
    ) -> Optional[FhirResource]:
        found = list(matches)
        if not found:
            logger.info("Resource not found", criteria=criteria.as_dict())
            return None
        if len(found) > 1:
            logger.debug(
                "Multiple resources match, using first",
                criteria=criteria.as_dict(),
                chosen=found[0].filename,
                candidates=[r.filename for r in found],
            )
        return found[0]

    def _load_optional(
        self,
        resource: Optional[FhirResource],
        base_url: Optional[str],
    ) -> Optional[FileResource]:
        if resource is None:
            return None
        try:
            return self.load(resource, convert=True, base_url=base_url)
        except FileNotFoundError:
            logger.warning("Indexed resource file is missing", topic=resource.topic, filename=resource.filename)
            return None
