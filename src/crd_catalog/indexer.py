"""
Directory Indexer

Walks the artifact root and builds the rule and resource catalogs:

    <root>/<Topic>/TopicMetadata.json
    <root>/<Topic>/<FhirVersion>/files/<Topic>Rule-<semver>.<ext>
    <root>/<Topic>/<FhirVersion>/resources/<ResourceType>-<FhirVersion>-<Name>.<ext>
    <root>/Shared/<FhirVersion>/resources/...

Only a missing root is fatal. Bad manifests, missing rule artifacts,
version mismatches and unparsable resource files are recorded as warnings
and the rest of the tree is still indexed.
"""

from typing import Dict, List, Optional
import re

import structlog

from crd_catalog.config import CatalogSettings
from crd_catalog.errors import (
    CatalogError,
    MalformedManifest,
    MissingArtifact,
    RootNotFound,
    UnparsableResourceFile,
    UnsupportedFhirVersion,
    VersionMismatch,
)
from crd_catalog.fhir_parsing import ResourceParser, default_parsers
from crd_catalog.manifest import parse_manifest
from crd_catalog.models import (
    FhirResource,
    IndexResult,
    IndexWarning,
    RuleMapping,
    TopicManifest,
)
from crd_catalog.short_names import code_system_full_name, payer_full_name
from crd_catalog.storage import FileStore

logger = structlog.get_logger(__name__)


def strip_name_from_filename(filename: str) -> str:
    """
    Derive a resource name from its filename.

    "Library-R4-HomeOxygenTherapy-prepopulation.json" -> "HomeOxygenTherapy-prepopulation"
    """
    name = filename.split("-", 2)[-1]
    if "." in name:
        name = name.rsplit(".", 1)[0]
    return name


class _IndexRun:
    """Mutable accumulator for a single pass; discarded if the pass fails."""

    def __init__(self):
        self.rules: List[RuleMapping] = []
        self.resources: List[FhirResource] = []
        self.topics: List[str] = []
        self.warnings: List[IndexWarning] = []

    def record(self, error: CatalogError) -> None:
        warning = IndexWarning(
            kind=type(error).__name__,
            message=error.message,
            topic=error.topic,
            path=error.path,
        )
        self.warnings.append(warning)
        logger.warning(
            "Indexing problem skipped",
            kind=warning.kind,
            topic=warning.topic,
            path=warning.path,
            detail=warning.message,
        )

    def result(self) -> IndexResult:
        return IndexResult(
            rules=tuple(self.rules),
            resources=tuple(self.resources),
            topics=tuple(self.topics),
            warnings=tuple(self.warnings),
        )


class DirectoryIndexer:
    """
    Builds RuleMapping and FhirResource catalogs from a FileStore.

    Usage:
        indexer = DirectoryIndexer(LocalFileStore(root))
        result = indexer.index()
        print(len(result.rules), len(result.resources))
    """

    def __init__(
        self,
        store: FileStore,
        parsers: Optional[Dict[str, ResourceParser]] = None,
        settings: Optional[CatalogSettings] = None,
    ):
        self.store = store
        self.settings = settings or CatalogSettings()
        self.parsers = {
            version.upper(): parser
            for version, parser in (parsers if parsers is not None else default_parsers()).items()
        }

    def index(self) -> IndexResult:
        """
        Run one full indexing pass.

        Raises:
            RootNotFound: the artifact root does not exist
        """
        if not self.store.exists():
            raise RootNotFound(
                f"artifact root {self.store.location} does not exist",
                path=self.store.location,
            )

        logger.info("Indexing artifact root", root=self.store.location)
        run = _IndexRun()
        shared = self.settings.shared_folder.lower()

        for folder in self.store.list_topics():
            if folder.startswith(self.settings.hidden_prefix):
                logger.debug("Skipping hidden folder", folder=folder)
            elif folder.lower() == shared:
                logger.info("Found shared resources", folder=folder)
                self._index_resources(folder, run)
            else:
                self._index_topic(folder, run)

        result = run.result()
        logger.info(
            "Indexing complete",
            topics=len(result.topics),
            rules=len(result.rules),
            resources=len(result.resources),
            warnings=len(result.warnings),
        )
        return result

    # -------------------------------------------------------------------------
    # Rules
    # -------------------------------------------------------------------------

    def find_rule_artifact(self, folder: str, topic: str, fhir_version: str) -> str:
        """
        Locate <topic>Rule-<major>.<minor>.<patch>.<ext> in the version's files folder.

        The first match in sorted filename order wins so reloads are reproducible.

        Raises:
            MissingArtifact: no file matches
        """
        files_folder = self.settings.files_folder
        pattern = re.compile(
            rf"^{re.escape(topic)}Rule-\d+\.\d+\.\d+\.{re.escape(self.settings.rule_extension)}$"
        )
        matches = sorted(
            name
            for name in self.store.list_artifacts(folder, fhir_version, files_folder)
            if pattern.match(name)
        )
        if not matches:
            raise MissingArtifact(
                f"no {pattern.pattern} rule artifact for {topic} ({fhir_version})",
                topic=topic,
                path=self.store.describe(folder, fhir_version, files_folder),
            )
        if len(matches) > 1:
            logger.info("Multiple rule artifacts, using first", topic=topic, chosen=matches[0], candidates=matches)
        return matches[0]

    def _index_topic(self, folder: str, run: _IndexRun) -> None:
        content = self.store.read_manifest(folder)
        if content is None:
            logger.info("Topic has no manifest, indexing resources only", folder=folder)
        else:
            manifest_path = self.store.describe(folder, self.settings.manifest_filename)
            try:
                manifest = parse_manifest(content, source=manifest_path)
            except MalformedManifest as exc:
                exc.topic = exc.topic or folder
                run.record(exc)
            else:
                logger.info("Found topic", topic=manifest.topic, folder=folder)
                run.topics.append(manifest.topic)
                self._index_rules(folder, manifest, run)

        self._index_resources(folder, run)

    def _index_rules(self, folder: str, manifest: TopicManifest, run: _IndexRun) -> None:
        rule_files: Dict[str, Optional[str]] = {}
        for fhir_version in manifest.fhir_versions:
            try:
                rule_files[fhir_version] = self.find_rule_artifact(folder, manifest.topic, fhir_version)
            except MissingArtifact as exc:
                run.record(exc)
                rule_files[fhir_version] = None

        added = skipped = 0
        for mapping in manifest.mappings:
            code_system = code_system_full_name(mapping.code_system)
            for code in mapping.codes:
                for payer in manifest.payers:
                    for fhir_version in manifest.fhir_versions:
                        rule_file = rule_files[fhir_version]
                        if rule_file is None:
                            skipped += 1
                            continue
                        run.rules.append(
                            RuleMapping(
                                topic=manifest.topic,
                                payer=payer_full_name(payer),
                                code_system=code_system,
                                code=code,
                                fhir_version=fhir_version,
                                rule_file=rule_file,
                            )
                        )
                        added += 1

        logger.info("Indexed rule mappings", topic=manifest.topic, added=added, skipped=skipped)

    # -------------------------------------------------------------------------
    # Resources
    # -------------------------------------------------------------------------

    def _index_resources(self, folder: str, run: _IndexRun) -> None:
        resources_folder = self.settings.resources_folder
        for version_folder in self.store.list_versions(folder):
            if version_folder.startswith(self.settings.hidden_prefix):
                continue
            fhir_version = version_folder.upper()
            filenames = self.store.list_artifacts(folder, version_folder, resources_folder)
            if not filenames:
                continue
            parser = self.parsers.get(fhir_version)
            if parser is None:
                run.record(
                    UnsupportedFhirVersion(
                        f"unsupported FHIR version {version_folder}, skipping folder",
                        topic=folder,
                        path=self.store.describe(folder, version_folder),
                    )
                )
                continue
            for filename in filenames:
                self._index_resource_file(folder, version_folder, filename, parser, run)

    def _index_resource_file(
        self,
        folder: str,
        version_folder: str,
        filename: str,
        parser: ResourceParser,
        run: _IndexRun,
    ) -> None:
        resources_folder = self.settings.resources_folder
        path = self.store.describe(folder, version_folder, resources_folder, filename)
        fhir_version = version_folder.upper()

        parts = filename.split("-")
        if filename.startswith(self.settings.hidden_prefix) or len(parts) < 3:
            logger.debug("Skipping file outside naming convention", path=path)
            return
        type_token, version_token = parts[0], parts[1]
        if version_token.upper() != fhir_version:
            run.record(
                VersionMismatch(
                    f"filename declares {version_token} but folder is {version_folder}",
                    topic=folder,
                    path=path,
                )
            )
            return

        resource_type = type_token.lower()
        resource_id: Optional[str] = None
        name: Optional[str] = None
        url: Optional[str] = None
        try:
            content = self.store.read_file(folder, version_folder, resources_folder, filename)
            parsed = parser.parse(content, type_token)
        except UnparsableResourceFile as exc:
            exc.topic, exc.path = folder, path
            run.record(exc)
        except OSError as exc:
            run.record(UnparsableResourceFile(f"could not read file: {exc}", topic=folder, path=path))
        else:
            resource_type = parsed.resource_type.lower()
            if parsed.id:
                resource_id = f"{resource_type}/{parsed.id}"
            name = parsed.name
            url = parsed.url

        if not resource_id:
            logger.warning("Resource has no id, using filename", path=path)
            resource_id = filename
        if not name:
            name = strip_name_from_filename(filename)
            logger.info("Resource has no name, using filename", path=path, name=name)

        run.resources.append(
            FhirResource(
                id=resource_id.lower(),
                name=name.lower(),
                resource_type=resource_type,
                topic=folder,
                fhir_version=fhir_version,
                filename=filename,
                url=url,
            )
        )
