"""
Catalog Errors

Exception taxonomy for indexing and reload. Only RootNotFound aborts a
reload; every other indexing error is recorded per item and skipped.
Query-time absence of a match is a normal result (None / empty list).
"""

from typing import Optional


class CatalogError(Exception):
    """Base class for catalog errors."""
    
    def __init__(
        self,
        message: str,
        topic: Optional[str] = None,
        path: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.topic = topic
        self.path = path


class RootNotFound(CatalogError):
    """The configured artifact root does not exist."""


class MalformedManifest(CatalogError):
    """A topic manifest is not valid JSON or misses required fields."""


class MissingArtifact(CatalogError):
    """No versioned rule artifact matches a topic / FHIR version pair."""


class UnparsableResourceFile(CatalogError):
    """A resource file could not be parsed as a FHIR resource."""


class VersionMismatch(CatalogError):
    """A resource filename declares a FHIR version other than its folder's."""


class UnsupportedFhirVersion(CatalogError):
    """No resource parser is registered for a FHIR version folder."""


class TerminologyError(CatalogError):
    """The external value set loader failed."""
