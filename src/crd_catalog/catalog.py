"""
Catalog Snapshot

The complete, immutable state published by one reload pass. Readers keep a
reference to a snapshot for the duration of a query; a reload builds a new
snapshot and swaps the reference.
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Tuple

from crd_catalog.models import FhirResource, IndexResult, IndexWarning, RuleMapping


@dataclass(frozen=True)
class CatalogSnapshot:
    """Rule and resource catalogs plus the warnings of the pass that built them."""
    rules: Tuple[RuleMapping, ...] = ()
    resources: Tuple[FhirResource, ...] = ()
    topics: Tuple[str, ...] = ()
    warnings: Tuple[IndexWarning, ...] = ()
    root: str = ""
    built_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    generation: int = 0
    _resources_by_key: Dict[Tuple[str, str], Tuple[FhirResource, ...]] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self):
        grouped: Dict[Tuple[str, str], list] = {}
        for resource in self.resources:
            grouped.setdefault((resource.fhir_version, resource.resource_type), []).append(resource)
        object.__setattr__(
            self,
            "_resources_by_key",
            {key: tuple(values) for key, values in grouped.items()},
        )

    @classmethod
    def empty(cls) -> "CatalogSnapshot":
        return cls()

    @classmethod
    def from_index(cls, result: IndexResult, root: str, generation: int) -> "CatalogSnapshot":
        return cls(
            rules=result.rules,
            resources=result.resources,
            topics=result.topics,
            warnings=result.warnings,
            root=root,
            generation=generation,
        )

    def resources_for(self, fhir_version: str | None, resource_type: str | None) -> Tuple[FhirResource, ...]:
        """Resources narrowed by version and type, in catalog order."""
        if fhir_version is not None and resource_type is not None:
            return self._resources_by_key.get((fhir_version, resource_type), ())
        return tuple(
            r for r in self.resources
            if (fhir_version is None or r.fhir_version == fhir_version)
            and (resource_type is None or r.resource_type == resource_type)
        )

    def summary(self) -> dict:
        return {
            "root": self.root,
            "generation": self.generation,
            "built_at": self.built_at.isoformat(),
            "topics": list(self.topics),
            "rules": len(self.rules),
            "resources": len(self.resources),
            "warnings": len(self.warnings),
        }
