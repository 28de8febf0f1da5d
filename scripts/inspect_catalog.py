#!/usr/bin/env python3
"""
CRD Catalog Inspector

Indexes an artifact root and prints the rule mappings, resources and
indexing warnings.

Usage:
    python scripts/inspect_catalog.py CDS-Library

    # Only rows for one topic / code, as JSON
    python scripts/inspect_catalog.py CDS-Library --topic HomeOxygenTherapy --code E0424 --json
"""
import argparse
import json
import sys
from pathlib import Path

# Add src to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from crd_catalog.config import CatalogSettings, Settings
from crd_catalog.errors import RootNotFound
from crd_catalog.models import RuleCriteria
from crd_catalog.observability import configure_logging
from crd_catalog.reload import ReloadCoordinator


def main() -> int:
    parser = argparse.ArgumentParser(description="Index a CRD artifact root and print the catalog")
    parser.add_argument("root", type=Path, help="Artifact root folder")
    parser.add_argument("--topic", help="Only rules for this topic")
    parser.add_argument("--payer", help="Only rules for this payer (full name)")
    parser.add_argument("--code-system", help="Only rules for this code system (full name)")
    parser.add_argument("--code", help="Only rules for this code")
    parser.add_argument("--fhir-version", help="Only rules for this FHIR version")
    parser.add_argument("--resources", action="store_true", help="Also list FHIR resources")
    parser.add_argument("--json", action="store_true", help="Print JSON instead of a table")
    parser.add_argument("--log-level", default="WARNING")
    args = parser.parse_args()

    configure_logging(args.log_level, json_logs=False)
    settings = Settings(catalog=CatalogSettings(rule_root=args.root))
    coordinator = ReloadCoordinator(settings=settings)

    try:
        result = coordinator.reload()
    except RootNotFound as e:
        print(f"error: {e.message}", file=sys.stderr)
        return 1

    criteria = RuleCriteria(
        topic=args.topic,
        payer=args.payer,
        code_system=args.code_system,
        code=args.code,
        fhir_version=args.fhir_version,
    )
    rules = coordinator.find_rules(criteria)
    resources = coordinator.snapshot.resources if args.resources else ()

    if args.json:
        print(json.dumps(
            {
                "rules": [r.to_dict() for r in rules],
                "resources": [r.to_dict() for r in resources],
                "warnings": [w.__dict__ for w in result.warnings],
            },
            indent=2,
        ))
        return 0

    print(f"{len(rules)} rule mapping(s)")
    for rule in rules:
        print(f"  {rule.topic:<28} {rule.payer:<45} {rule.code:<10} {rule.fhir_version:<5} {rule.rule_file}")
    if args.resources:
        print(f"{len(resources)} resource(s)")
        for resource in resources:
            print(f"  {resource.fhir_version:<5} {resource.resource_type:<14} {resource.id:<50} {resource.topic}")
    if result.warnings:
        print(f"{len(result.warnings)} warning(s)")
        for warning in result.warnings:
            print(f"  [{warning.kind}] {warning.path or warning.topic}: {warning.message}")
    return 0


if __name__ == "__main__":
    sys.exit(main())
