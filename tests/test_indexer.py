import pytest

from crd_catalog.config import CatalogSettings
from crd_catalog.errors import RootNotFound
from crd_catalog.indexer import DirectoryIndexer, strip_name_from_filename
from crd_catalog.storage import LocalFileStore

from conftest import HOME_OXYGEN_QUESTIONNAIRE

CMS = "Centers for Medicare and Medicaid Services"
CPT = "http://www.ama-assn.org/go/cpt"


def _index(tree):
    indexer = DirectoryIndexer(LocalFileStore(tree.root), settings=CatalogSettings(rule_root=tree.root))
    return indexer.index()


def _kinds(result):
    return [w.kind for w in result.warnings]


def test_missing_root_is_fatal(tmp_path):
    indexer = DirectoryIndexer(LocalFileStore(tmp_path / "nowhere"))
    with pytest.raises(RootNotFound):
        indexer.index()


def test_index_library(library):
    result = _index(library)

    assert result.topics == ("CPAP", "HomeOxygenTherapy")
    # CPAP: 2 codes x 2 payers x 2 versions, HomeOxygenTherapy: 2 codes x 1 payer x 1 version
    assert len(result.rules) == 10
    assert result.warnings == ()
    assert {r.topic for r in result.rules} == {"CPAP", "HomeOxygenTherapy"}


def test_rule_rows_are_expanded(library):
    result = _index(library)
    row = next(r for r in result.rules if r.code == "E0424")

    assert row.topic == "HomeOxygenTherapy"
    assert row.payer == CMS
    assert row.code_system == CPT
    assert row.fhir_version == "R4"
    assert row.rule_file == "HomeOxygenTherapyRule-1.0.0.cql"


def test_rule_artifact_tie_break_is_sorted(library):
    result = _index(library)
    cpap = {r.fhir_version: r.rule_file for r in result.rules if r.topic == "CPAP"}

    assert cpap == {"R4": "CPAPRule-1.0.0.cql", "STU3": "CPAPRule-0.1.0.cql"}


def test_insertion_order_follows_manifest(library):
    result = _index(library)
    cpap = [(r.code, r.payer, r.fhir_version) for r in result.rules if r.topic == "CPAP"]

    assert cpap[:4] == [
        ("E0601", CMS, "R4"),
        ("E0601", CMS, "STU3"),
        ("E0601", "Anthem", "R4"),
        ("E0601", "Anthem", "STU3"),
    ]


def test_hidden_folders_are_skipped(library):
    result = _index(library)
    assert "Hidden" not in result.topics
    assert not [r for r in result.rules if r.topic == "Hidden"]


def test_missing_artifact_skips_only_that_combination(library):
    library.manifest("Oxygen", payers=["cms"], versions=["R4", "STU3"])
    library.rule("Oxygen", "R4", "OxygenRule-2.0.0.cql")

    result = _index(library)
    oxygen = [r for r in result.rules if r.topic == "Oxygen"]

    assert [(r.fhir_version, r.rule_file) for r in oxygen] == [("R4", "OxygenRule-2.0.0.cql")]
    assert _kinds(result) == ["MissingArtifact"]
    assert result.warnings[0].topic == "Oxygen"
    assert len(result.rules) == 11


def test_artifact_name_must_match_pattern(library):
    library.manifest("Walker", versions=["R4"])
    library.rule("Walker", "R4", "WalkerRule-1.0.cql")
    library.rule("Walker", "R4", "WalkerRule-1.0.0.json")
    library.rule("Walker", "R4", "OtherRule-1.0.0.cql")

    result = _index(library)

    assert not [r for r in result.rules if r.topic == "Walker"]
    assert _kinds(result) == ["MissingArtifact"]


def test_malformed_manifest_does_not_abort(library):
    library.manifest("Broken", raw="{not json")
    library.rule("Broken", "R4", "BrokenRule-1.0.0.cql")
    library.resource("Broken", "R4", "Questionnaire-R4-Broken.json", {**HOME_OXYGEN_QUESTIONNAIRE, "id": "Broken"})

    result = _index(library)

    assert _kinds(result) == ["MalformedManifest"]
    assert result.warnings[0].topic == "Broken"
    assert not [r for r in result.rules if r.topic == "Broken"]
    assert len(result.rules) == 10
    # resources of the topic are still indexed
    assert "questionnaire/broken" in {r.id for r in result.resources}


def test_topic_without_manifest_contributes_resources_only(library):
    library.resource("Drafts", "R4", "Questionnaire-R4-Draft.json", {**HOME_OXYGEN_QUESTIONNAIRE, "id": "Draft"})
    library.rule("Drafts", "R4", "DraftsRule-1.0.0.cql")

    result = _index(library)

    assert "Drafts" not in result.topics
    assert not [r for r in result.rules if r.topic == "Drafts"]
    assert [r.topic for r in result.resources if r.id == "questionnaire/draft"] == ["Drafts"]


def test_manifest_filename_is_case_insensitive(library):
    path = library.manifest("Nebulizer", versions=["R4"])
    path.rename(path.with_name("topicmetadata.JSON"))
    library.rule("Nebulizer", "R4", "NebulizerRule-1.0.0.cql")

    result = _index(library)

    assert "Nebulizer" in result.topics
    assert len([r for r in result.rules if r.topic == "Nebulizer"]) == 1


def test_resources_are_indexed(library):
    result = _index(library)
    by_file = {r.filename: r for r in result.resources}

    questionnaire = by_file["Questionnaire-R4-HomeOxygenTherapy.json"]
    assert questionnaire.id == "questionnaire/homeoxygentherapy"
    assert questionnaire.name == "homeoxygentherapy"
    assert questionnaire.resource_type == "questionnaire"
    assert questionnaire.topic == "HomeOxygenTherapy"
    assert questionnaire.fhir_version == "R4"
    assert questionnaire.url == HOME_OXYGEN_QUESTIONNAIRE["url"]

    library_resource = by_file["Library-R4-HomeOxygenTherapy-prepopulation.json"]
    assert library_resource.id == "library/homeoxygentherapyprepopulation"

    valueset = by_file["ValueSet-R4-oxygen-devices.json"]
    assert valueset.topic == "Shared"
    assert valueset.resource_type == "valueset"

    stu3 = by_file["Questionnaire-STU3-CPAP.json"]
    assert stu3.fhir_version == "STU3"
    assert stu3.id == "questionnaire/cpap"


def test_unparsable_resource_gets_filename_identity(library):
    library.resource("HomeOxygenTherapy", "R4", "Questionnaire-R4-HomeOxygen-broken.json", "{ not json")

    result = _index(library)
    broken = [r for r in result.resources if r.filename == "Questionnaire-R4-HomeOxygen-broken.json"]

    assert len(broken) == 1
    assert broken[0].id == "questionnaire-r4-homeoxygen-broken.json"
    assert broken[0].name == "homeoxygen-broken"
    assert broken[0].resource_type == "questionnaire"
    assert _kinds(result) == ["UnparsableResourceFile"]


def test_empty_resource_id_defaults_to_filename(library):
    filename = "Questionnaire-R4-HomeOxygen-prepopulation.json"
    library.resource("HomeOxygenTherapy", "R4", filename, {**HOME_OXYGEN_QUESTIONNAIRE, "id": ""})

    result = _index(library)
    record = next(r for r in result.resources if r.filename == filename)

    assert record.id == filename.lower()
    assert record.name == "homeoxygentherapy"
    assert record.url == HOME_OXYGEN_QUESTIONNAIRE["url"]
    assert result.warnings == ()


def test_resource_without_id_keeps_parsed_fields(library):
    filename = "Questionnaire-R4-HomeOxygen-noid.json"
    data = {k: v for k, v in HOME_OXYGEN_QUESTIONNAIRE.items() if k != "id"}
    library.resource("HomeOxygenTherapy", "R4", filename, data)

    result = _index(library)
    record = next(r for r in result.resources if r.filename == filename)

    assert record.id == "questionnaire-r4-homeoxygen-noid.json"
    assert record.name == "homeoxygentherapy"
    assert record.resource_type == "questionnaire"
    assert result.warnings == ()


def test_resource_without_name_uses_filename(library):
    data = {k: v for k, v in HOME_OXYGEN_QUESTIONNAIRE.items() if k != "name"}
    library.resource("HomeOxygenTherapy", "R4", "Questionnaire-R4-Unnamed-Form.json", {**data, "id": "unnamed"})

    result = _index(library)
    record = next(r for r in result.resources if r.filename == "Questionnaire-R4-Unnamed-Form.json")

    assert record.id == "questionnaire/unnamed"
    assert record.name == "unnamed-form"


def test_version_mismatch_is_skipped(library):
    library.resource("HomeOxygenTherapy", "R4", "Questionnaire-STU3-Wrong.json", HOME_OXYGEN_QUESTIONNAIRE)

    result = _index(library)

    assert "Questionnaire-STU3-Wrong.json" not in {r.filename for r in result.resources}
    assert _kinds(result) == ["VersionMismatch"]


def test_unsupported_version_folder(library):
    library.resource("Shared", "R5", "ValueSet-R5-thing.json", {"resourceType": "ValueSet", "status": "active"})

    result = _index(library)

    assert not [r for r in result.resources if r.fhir_version == "R5"]
    assert _kinds(result) == ["UnsupportedFhirVersion"]


def test_files_outside_naming_convention_are_ignored(library):
    library.resource("Shared", "R4", "README.md", "notes")
    library.resource("Shared", "R4", ".DS_Store", "")

    result = _index(library)

    assert {r.filename for r in result.resources if r.topic == "Shared"} == {"ValueSet-R4-oxygen-devices.json"}
    assert result.warnings == ()


def test_lowercase_version_folder(library):
    library.resource("Shared", "r4", "ValueSet-R4-lower.json", {"resourceType": "ValueSet", "id": "lower", "status": "active"})

    result = _index(library)
    record = next(r for r in result.resources if r.filename == "ValueSet-R4-lower.json")

    assert record.fhir_version == "R4"
    assert record.id == "valueset/lower"


def test_strip_name_from_filename():
    assert strip_name_from_filename("Library-R4-HomeOxygenTherapy-prepopulation.json") == "HomeOxygenTherapy-prepopulation"
    assert strip_name_from_filename("ValueSet-STU3-oxygen") == "oxygen"


def test_reindex_is_reproducible(library):
    assert _index(library) == _index(library)
