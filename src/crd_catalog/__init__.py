"""
CRD Rule Catalog

Indexes a tree of coverage-requirement topics (manifest, versioned rule
artifacts and FHIR resources) into an immutable catalog snapshot and
answers rule / resource lookups against it.

Usage:
    from crd_catalog import ReloadCoordinator, RuleCriteria

    coordinator = ReloadCoordinator()
    coordinator.reload()
    rules = coordinator.find_rules(RuleCriteria(topic="HomeOxygenTherapy", code="E0424"))
"""

from crd_catalog.catalog import CatalogSnapshot
from crd_catalog.errors import (
    CatalogError,
    MalformedManifest,
    MissingArtifact,
    RootNotFound,
    TerminologyError,
    UnparsableResourceFile,
    UnsupportedFhirVersion,
    VersionMismatch,
)
from crd_catalog.indexer import DirectoryIndexer
from crd_catalog.manifest import parse_manifest
from crd_catalog.matcher import RuleMatcher
from crd_catalog.models import (
    FhirResource,
    FhirResourceCriteria,
    FileResource,
    IndexResult,
    RuleCriteria,
    RuleMapping,
    TopicManifest,
)
from crd_catalog.reload import ReloadCoordinator
from crd_catalog.resolver import ResourceConverter, ResourceResolver
from crd_catalog.storage import FileStore, LocalFileStore

__version__ = "0.1.0"

__all__ = [
    "CatalogError",
    "CatalogSnapshot",
    "DirectoryIndexer",
    "FhirResource",
    "FhirResourceCriteria",
    "FileResource",
    "FileStore",
    "IndexResult",
    "LocalFileStore",
    "MalformedManifest",
    "MissingArtifact",
    "ReloadCoordinator",
    "ResourceConverter",
    "ResourceResolver",
    "RootNotFound",
    "RuleCriteria",
    "RuleMapping",
    "RuleMatcher",
    "TerminologyError",
    "TopicManifest",
    "UnparsableResourceFile",
    "UnsupportedFhirVersion",
    "VersionMismatch",
    "parse_manifest",
]
