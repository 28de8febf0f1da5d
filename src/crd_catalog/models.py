"""
Catalog Data Models

Manifest documents are validated with Pydantic; catalog rows are frozen
dataclasses so a published snapshot can be shared between threads without
copying.
"""

from dataclasses import dataclass, field, fields, replace
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator


# =============================================================================
# Manifest Models
# =============================================================================

def _dedupe(values: list[str]) -> tuple[str, ...]:
    seen: dict[str, None] = {}
    for value in values:
        seen.setdefault(value, None)
    return tuple(seen)


class CodeMapping(BaseModel):
    """One code system and the codes that trigger the topic's rule."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    code_system: str = Field(alias="codeSystem", min_length=1)
    codes: tuple[str, ...] = Field(min_length=1)

    @field_validator("codes")
    @classmethod
    def _unique_codes(cls, codes: tuple[str, ...]) -> tuple[str, ...]:
        if any(not code for code in codes):
            raise ValueError("codes must be non-empty strings")
        if len(set(codes)) != len(codes):
            raise ValueError("codes must not repeat within a mapping")
        return codes


class TopicManifest(BaseModel):
    """Parsed TopicMetadata.json for one topic folder."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    topic: str = Field(min_length=1)
    payers: tuple[str, ...]
    fhir_versions: tuple[str, ...] = Field(alias="fhirVersions")
    mappings: tuple[CodeMapping, ...]

    @field_validator("payers", "fhir_versions", mode="before")
    @classmethod
    def _dedupe_list(cls, value: Any) -> Any:
        if isinstance(value, list) and all(isinstance(v, str) for v in value):
            return _dedupe(value)
        return value

    @model_validator(mode="after")
    def _code_owned_once(self) -> "TopicManifest":
        owners: dict[str, int] = {}
        for index, mapping in enumerate(self.mappings):
            for code in mapping.codes:
                if code in owners:
                    raise ValueError(
                        f"code {code!r} is listed in mappings {owners[code]} and {index}"
                    )
                owners[code] = index
        return self


# =============================================================================
# Catalog Rows
# =============================================================================

@dataclass(frozen=True)
class RuleMapping:
    """One payer x code system x code x FHIR version -> rule file row."""
    topic: str
    payer: str
    code_system: str
    code: str
    fhir_version: str
    rule_file: str

    def to_dict(self) -> dict[str, str]:
        return {
            "topic": self.topic,
            "payer": self.payer,
            "codeSystem": self.code_system,
            "code": self.code,
            "fhirVersion": self.fhir_version,
            "ruleFile": self.rule_file,
        }


@dataclass(frozen=True)
class FhirResource:
    """An auxiliary FHIR artifact (Questionnaire, Library, ValueSet...)."""
    id: str
    name: str
    resource_type: str
    topic: str
    fhir_version: str
    filename: str
    url: Optional[str] = None

    def to_dict(self) -> dict[str, Optional[str]]:
        return {
            "id": self.id,
            "name": self.name,
            "resourceType": self.resource_type,
            "topic": self.topic,
            "fhirVersion": self.fhir_version,
            "filename": self.filename,
            "url": self.url,
        }


@dataclass(frozen=True)
class FileResource:
    """File content handed back to the transport layer."""
    filename: str
    content: bytes
    media_type: str = "application/octet-stream"


@dataclass(frozen=True)
class ParsedResource:
    """Identity fields extracted from a resource file's content."""
    resource_type: str
    id: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None


@dataclass(frozen=True)
class IndexWarning:
    """A per-item problem absorbed during indexing."""
    kind: str
    message: str
    topic: Optional[str] = None
    path: Optional[str] = None


# =============================================================================
# Query Criteria
# =============================================================================

class _Criteria:
    """Builder helpers shared by the criteria types."""

    def where(self, **values: Optional[str]):
        """Return a copy with the given fields set."""
        return replace(self, **values)

    def as_dict(self) -> dict[str, str]:
        """Only the fields that narrow the query."""
        return {
            f.name: getattr(self, f.name)
            for f in fields(self)
            if getattr(self, f.name) is not None
        }

    def is_empty(self) -> bool:
        return not self.as_dict()


@dataclass(frozen=True)
class RuleCriteria(_Criteria):
    """
    Partially specified rule query; unset fields match any value.

    Usage:
        criteria = RuleCriteria(topic="HomeOxygenTherapy").where(code="E0424")
    """
    topic: Optional[str] = None
    payer: Optional[str] = None
    code_system: Optional[str] = None
    code: Optional[str] = None
    fhir_version: Optional[str] = None

    @classmethod
    def from_rule(cls, rule: RuleMapping) -> "RuleCriteria":
        return cls(
            topic=rule.topic,
            payer=rule.payer,
            code_system=rule.code_system,
            code=rule.code,
            fhir_version=rule.fhir_version,
        )

    def matches(self, rule: RuleMapping) -> bool:
        return all(getattr(rule, name) == value for name, value in self.as_dict().items())


@dataclass(frozen=True)
class FhirResourceCriteria(_Criteria):
    """Resource query: version/type/topic filters plus one lookup key."""
    fhir_version: Optional[str] = None
    resource_type: Optional[str] = None
    topic: Optional[str] = None
    id: Optional[str] = None
    name: Optional[str] = None
    url: Optional[str] = None

    def matches_filters(self, resource: FhirResource) -> bool:
        """Apply the version, type and topic filters only."""
        if self.fhir_version is not None and resource.fhir_version != self.fhir_version:
            return False
        if self.resource_type is not None and resource.resource_type != self.resource_type:
            return False
        if self.topic is not None and resource.topic != self.topic:
            return False
        return True


@dataclass(frozen=True)
class IndexResult:
    """Output of one indexing pass."""
    rules: tuple[RuleMapping, ...] = ()
    resources: tuple[FhirResource, ...] = ()
    topics: tuple[str, ...] = ()
    warnings: tuple[IndexWarning, ...] = field(default_factory=tuple)
