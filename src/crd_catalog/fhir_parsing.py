"""
FHIR Resource Parsing

Per-version parsers that pull the identity fields (type, id, name,
canonical url) out of a resource file. The indexer only depends on the
ResourceParser interface; the default implementations use fhir.resources
(R4B models for R4 folders, STU3 models for STU3 folders).
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, Optional, Type
import json

import structlog
from fhir.resources.R4B import get_fhir_model_class as r4_model_class
from fhir.resources.STU3 import get_fhir_model_class as stu3_model_class

from crd_catalog.errors import UnparsableResourceFile
from crd_catalog.models import ParsedResource

logger = structlog.get_logger(__name__)


class ResourceParser(ABC):
    """Extracts identity fields from a FHIR resource document."""

    fhir_version: str

    @abstractmethod
    def parse(self, content: bytes, resource_type: str) -> ParsedResource:
        """
        Parse resource content.

        Args:
            content: Raw file bytes
            resource_type: Resource type declared by the filename

        Returns:
            ParsedResource with the fields found in the document

        Raises:
            UnparsableResourceFile: content is not a valid resource
        """
        pass


class FhirResourcesParser(ResourceParser):
    """
    JSON resource parser backed by fhir.resources models.

    Usage:
        parser = FhirResourcesParser("R4", r4_model_class)
        parsed = parser.parse(content, "Questionnaire")
    """

    def __init__(
        self,
        fhir_version: str,
        model_class: Callable[[str], Type[Any]],
    ):
        self.fhir_version = fhir_version
        self._model_class = model_class

    def parse(self, content: bytes, resource_type: str) -> ParsedResource:
        try:
            data = json.loads(content)
        except (UnicodeDecodeError, json.JSONDecodeError) as exc:
            raise UnparsableResourceFile(f"invalid JSON: {exc}") from exc

        if not isinstance(data, dict) or not isinstance(data.get("resourceType"), str):
            raise UnparsableResourceFile("document has no resourceType")

        # empty ids fail model validation; treat them as absent
        if data.get("id") == "":
            data = {key: value for key, value in data.items() if key != "id"}

        declared_type = data["resourceType"]
        try:
            resource = self._model_class(declared_type).model_validate(data)
        except (ValueError, TypeError, LookupError) as exc:
            raise UnparsableResourceFile(
                f"not a valid {self.fhir_version} {declared_type}: {exc}"
            ) from exc

        if declared_type.lower() != resource_type.lower():
            logger.debug(
                "Resource type differs from filename",
                filename_type=resource_type,
                content_type=declared_type,
            )

        return ParsedResource(
            resource_type=declared_type,
            id=_text(getattr(resource, "id", None)),
            name=_text(getattr(resource, "name", None)),
            url=_text(getattr(resource, "url", None)),
        )


def _text(value: Any) -> Optional[str]:
    # name is a string on the knowledge resources but a HumanName list elsewhere
    if value is None or isinstance(value, (list, tuple)):
        return None
    text = str(value)
    return text or None


def default_parsers() -> Dict[str, ResourceParser]:
    """Parsers keyed by upper-cased FHIR version folder name."""
    return {
        "R4": FhirResourcesParser("R4", r4_model_class),
        "STU3": FhirResourcesParser("STU3", stu3_model_class),
    }
