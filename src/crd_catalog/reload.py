"""
Reload Coordinator

Owns the published catalog snapshot. A reload indexes the artifact root
into a brand new snapshot and publishes it with a single reference
assignment; queries read whichever snapshot was published when they
started and never see a half-built catalog. A failed reload leaves the
previous snapshot live.
"""

from typing import Dict, List, Optional
import threading
import time

import structlog

from crd_catalog.catalog import CatalogSnapshot
from crd_catalog.config import Settings, get_settings
from crd_catalog.errors import MissingArtifact, TerminologyError
from crd_catalog.fhir_parsing import ResourceParser
from crd_catalog.indexer import DirectoryIndexer
from crd_catalog.matcher import RuleMatcher
from crd_catalog.models import (
    FhirResource,
    FileResource,
    IndexResult,
    RuleCriteria,
    RuleMapping,
)
from crd_catalog.observability import CatalogMetrics
from crd_catalog.resolver import ResourceConverter, ResourceResolver
from crd_catalog.storage import FileStore, LocalFileStore
from crd_catalog.terminology import Credentials, ValueSetCache

logger = structlog.get_logger(__name__)


class ReloadCoordinator:
    """
    Single writer, many readers catalog owner.

    Usage:
        coordinator = ReloadCoordinator()
        coordinator.reload()
        rules = coordinator.find_rules(RuleCriteria(topic="HomeOxygenTherapy"))
        questionnaire = coordinator.get_resource_by_id("R4", "questionnaire", "home-o2")
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        store: Optional[FileStore] = None,
        parsers: Optional[Dict[str, ResourceParser]] = None,
        terminology: Optional[ValueSetCache] = None,
        converter: Optional[ResourceConverter] = None,
    ):
        self.settings = settings or get_settings()
        catalog_settings = self.settings.catalog
        self.store = store or LocalFileStore(
            catalog_settings.rule_root,
            manifest_filename=catalog_settings.manifest_filename,
        )
        self.indexer = DirectoryIndexer(self.store, parsers=parsers, settings=catalog_settings)
        self.terminology = terminology or ValueSetCache(
            self.settings.terminology,
            cache_dir=(
                self.settings.terminology.cache_dir
                or catalog_settings.rule_root / catalog_settings.shared_folder
            ),
        )
        self.converter = converter
        self.metrics = CatalogMetrics()

        self._snapshot = CatalogSnapshot.empty()
        self._write_lock = threading.Lock()

    # -------------------------------------------------------------------------
    # Publication
    # -------------------------------------------------------------------------

    @property
    def snapshot(self) -> CatalogSnapshot:
        """The currently published snapshot."""
        return self._snapshot

    def reload(self) -> IndexResult:
        """
        Rebuild both catalogs and publish them atomically.

        Raises:
            RootNotFound: the artifact root is missing; the old snapshot stays live
        """
        with self._write_lock:
            started = time.monotonic()
            logger.info("Reloading catalog", root=self.store.location)
            try:
                result = self.indexer.index()
            except Exception:
                self.metrics.reloads.inc(labels={"status": "failed"})
                logger.exception(
                    "Reload failed, keeping published catalog",
                    generation=self._snapshot.generation,
                )
                raise

            snapshot = CatalogSnapshot.from_index(
                result,
                root=self.store.location,
                generation=self._snapshot.generation + 1,
            )
            self._snapshot = snapshot

            elapsed = time.monotonic() - started
            self.metrics.reloads.inc(labels={"status": "success"})
            for warning in result.warnings:
                self.metrics.index_warnings.inc(labels={"kind": warning.kind})
            self.metrics.rule_mappings.set(len(snapshot.rules))
            self.metrics.fhir_resources.set(len(snapshot.resources))
            self.metrics.reload_duration.set(elapsed)
            logger.info("Catalog published", **snapshot.summary())
            return result

    def reinitialize_external_loader(self, credentials: Optional[Credentials] = None) -> bool:
        """
        Reconnect the terminology loader and refresh cached value sets.

        Failures are logged; the existing cache keeps being used.
        """
        try:
            self.terminology.reinitialize(credentials)
            self.terminology.refresh()
        except TerminologyError as e:
            logger.warning("Terminology refresh failed, using cached value sets", error=e.message)
            return False
        except Exception as e:
            logger.warning("Terminology loader unavailable, using cached value sets", error=str(e))
            return False
        return True

    def reload_with_terminology(self, credentials: Optional[Credentials] = None) -> IndexResult:
        """Administrative reload: refresh the terminology cache, then reindex."""
        self.reinitialize_external_loader(credentials)
        return self.reload()

    # -------------------------------------------------------------------------
    # Queries
    # -------------------------------------------------------------------------

    def matcher(self) -> RuleMatcher:
        return RuleMatcher(self._snapshot)

    def resolver(self) -> ResourceResolver:
        return ResourceResolver(
            self._snapshot,
            self.store,
            settings=self.settings.catalog,
            converter=self.converter,
        )

    def find_rules(self, criteria: Optional[RuleCriteria] = None) -> List[RuleMapping]:
        logger.info("find_rules", criteria=(criteria or RuleCriteria()).as_dict())
        return self.matcher().find_rules(criteria)

    def find_all(self) -> List[RuleMapping]:
        return self.matcher().find_all()

    def find_resource_by_id(self, fhir_version: str, resource_type: str, resource_id: str) -> Optional[FhirResource]:
        return self.resolver().find_by_id(fhir_version, resource_type, resource_id)

    def get_resource_by_id(self, fhir_version: str, resource_type: str, resource_id: str) -> Optional[FileResource]:
        logger.info("get_resource_by_id", fhir_version=fhir_version, resource_type=resource_type, id=resource_id)
        return self.resolver().get_resource_by_id(
            fhir_version, resource_type, resource_id, base_url=self.settings.catalog.base_url
        )

    def get_resource_by_name(
        self,
        fhir_version: str,
        resource_type: str,
        name: str,
        topic: Optional[str] = None,
    ) -> Optional[FileResource]:
        logger.info("get_resource_by_name", fhir_version=fhir_version, resource_type=resource_type, name=name)
        return self.resolver().get_resource_by_name(
            fhir_version, resource_type, name, topic=topic, base_url=self.settings.catalog.base_url
        )

    def get_resource_by_url(
        self,
        fhir_version: str,
        resource_type: str,
        url: str,
        own_base_url: Optional[str] = None,
    ) -> Optional[FileResource]:
        logger.info("get_resource_by_url", fhir_version=fhir_version, resource_type=resource_type, url=url)
        return self.resolver().get_resource_by_url(
            fhir_version, resource_type, url, own_base_url or self.settings.catalog.base_url
        )

    def get_file(self, topic: str, fhir_version: str, filename: str, convert: bool = True) -> Optional[FileResource]:
        return self.resolver().get_file(topic, fhir_version, filename, convert=convert)

    def get_rule_file(self, topic: str, fhir_version: str, convert: bool = False) -> Optional[FileResource]:
        """The rule artifact currently mapped for a topic / FHIR version."""
        rule = self.matcher().find_first(RuleCriteria(topic=topic, fhir_version=fhir_version))
        if rule is None:
            try:
                rule_file = self.indexer.find_rule_artifact(topic, topic, fhir_version)
            except MissingArtifact:
                logger.info("No rule artifact", topic=topic, fhir_version=fhir_version)
                return None
        else:
            rule_file = rule.rule_file
        return self.get_file(topic, fhir_version, rule_file, convert=convert)
