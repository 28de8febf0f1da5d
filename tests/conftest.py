import json
from pathlib import Path

import pytest

from crd_catalog.config import CatalogSettings, Settings, TerminologySettings


HOME_OXYGEN_QUESTIONNAIRE = {
    "resourceType": "Questionnaire",
    "id": "HomeOxygenTherapy",
    "name": "HomeOxygenTherapy",
    "url": "http://hl7.org/fhir/us/davinci-dtr/Questionnaire/home-oxygen-therapy",
    "status": "draft",
}

HOME_OXYGEN_LIBRARY = {
    "resourceType": "Library",
    "id": "HomeOxygenTherapyPrepopulation",
    "name": "HomeOxygenTherapyPrepopulation",
    "status": "draft",
    "type": {
        "coding": [
            {
                "system": "http://terminology.hl7.org/CodeSystem/library-type",
                "code": "logic-library",
            }
        ]
    },
}

OXYGEN_VALUESET = {
    "resourceType": "ValueSet",
    "id": "oxygen-devices",
    "name": "OxygenDevices",
    "url": "http://cts.nlm.nih.gov/fhir/ValueSet/2.16.840.1.113762.1.4.1219.35",
    "status": "active",
}

CPAP_STU3_QUESTIONNAIRE = {
    "resourceType": "Questionnaire",
    "id": "CPAP",
    "name": "CPAP",
    "status": "draft",
}


class ArtifactTree:
    """Writes topic folders in the layout the indexer expects."""

    def __init__(self, root: Path):
        self.root = root
        self.root.mkdir(parents=True, exist_ok=True)

    def manifest(self, folder, topic=None, payers=("cms",), versions=("R4",), mappings=None, raw=None):
        path = self.root / folder / "TopicMetadata.json"
        path.parent.mkdir(parents=True, exist_ok=True)
        if raw is None:
            raw = json.dumps({
                "topic": topic or folder,
                "payers": list(payers),
                "fhirVersions": list(versions),
                "mappings": mappings or [{"codeSystem": "cpt", "codes": ["99999"]}],
            })
        path.write_text(raw)
        return path

    def rule(self, folder, version, filename, content="library Rule version '1.0.0'"):
        path = self.root / folder / version / "files" / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content)
        return path

    def resource(self, folder, version, filename, data):
        path = self.root / folder / version / "resources" / filename
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(data if isinstance(data, str) else json.dumps(data))
        return path


@pytest.fixture
def tree(tmp_path):
    return ArtifactTree(tmp_path / "CDS-Library")


@pytest.fixture
def library(tree):
    """
    A small library:
      CPAP               cms + anthem, R4 + STU3, hcpcs E0601 and cpt 94660
      HomeOxygenTherapy  Medicare, R4, CPT E0424 and E0439
      Shared             one R4 ValueSet
      .git               hidden, ignored
    """
    tree.manifest(
        "CPAP",
        payers=["cms", "anthem"],
        versions=["R4", "STU3"],
        mappings=[
            {"codeSystem": "hcpcs", "codes": ["E0601"]},
            {"codeSystem": "cpt", "codes": ["94660"]},
        ],
    )
    tree.rule("CPAP", "R4", "CPAPRule-1.1.0.cql")
    tree.rule("CPAP", "R4", "CPAPRule-1.0.0.cql")
    tree.rule("CPAP", "R4", "CPAPPrepopulation-1.0.0.cql")
    tree.rule("CPAP", "STU3", "CPAPRule-0.1.0.cql")
    tree.resource("CPAP", "STU3", "Questionnaire-STU3-CPAP.json", CPAP_STU3_QUESTIONNAIRE)

    tree.manifest(
        "HomeOxygenTherapy",
        payers=["Medicare"],
        versions=["R4"],
        mappings=[{"codeSystem": "CPT", "codes": ["E0424", "E0439"]}],
    )
    tree.rule("HomeOxygenTherapy", "R4", "HomeOxygenTherapyRule-1.0.0.cql")
    tree.resource("HomeOxygenTherapy", "R4", "Questionnaire-R4-HomeOxygenTherapy.json", HOME_OXYGEN_QUESTIONNAIRE)
    tree.resource(
        "HomeOxygenTherapy", "R4", "Library-R4-HomeOxygenTherapy-prepopulation.json", HOME_OXYGEN_LIBRARY
    )

    tree.resource("Shared", "R4", "ValueSet-R4-oxygen-devices.json", OXYGEN_VALUESET)

    tree.manifest(".git", topic="Hidden")
    tree.rule(".git", "R4", "HiddenRule-1.0.0.cql")
    return tree


@pytest.fixture
def settings(tree, tmp_path):
    return Settings(
        catalog=CatalogSettings(rule_root=tree.root, base_url="http://localhost:8090/"),
        terminology=TerminologySettings(
            base_url="https://terminology.example.org/fhir/",
            cache_dir=tmp_path / "vsac-cache",
        ),
    )
