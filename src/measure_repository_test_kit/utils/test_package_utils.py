"""
Unit tests for :mod:`measure_repository_test_kit.utils.package_utils`.
"""

from __future__ import annotations

import copy
import logging
from typing import Any

import pytest

from measure_repository_test_kit.common.common import MatchKind
from measure_repository_test_kit.utils.general_utils import IdentifierMatch
from measure_repository_test_kit.utils.package_utils import (
    MODEL_INFO_REFERENCE,
    ReferenceDetection,
    collect_related_artifacts,
    find_entry,
    missing_related_artifacts,
    reference_resource_type,
    related_artifacts_present,
    retrieve_measure_from_bundle,
    retrieve_root_library_from_bundle,
)

LIBRARY_URL = "http://example.com/Library/main"
DEPENDENCY_URL = "http://example.com/Library/dependency"
VALUESET_URL = "http://example.com/ValueSet/codes"


def make_bundle(*resources: dict[str, Any]) -> dict[str, Any]:
    return {
        "resourceType": "Bundle",
        "type": "collection",
        "entry": [{"resource": resource} for resource in resources],
    }


def make_library(
    url: str = LIBRARY_URL,
    version: str | None = "1.0.0",
    depends_on: list[str] | None = None,
    **extra: Any,
) -> dict[str, Any]:
    library: dict[str, Any] = {"resourceType": "Library", "url": url, **extra}
    if version is not None:
        library["version"] = version
    library["relatedArtifact"] = [
        {"type": "depends-on", "resource": ref} for ref in depends_on or []
    ]
    return library


# -----------------------------
# find_entry
# -----------------------------
@pytest.fixture
def two_measures() -> dict[str, Any]:
    return make_bundle(
        {"resourceType": "Measure", "id": "A", "url": "http://example.com/Measure/A"},
        {
            "resourceType": "Measure",
            "id": "B",
            "url": "http://example.com/Measure/B",
            "identifier": [{"system": "http://example.com/ids", "value": "b-1"}],
        },
        {"resourceType": "Library", "id": "C"},
    )


def test_find_entry_by_id(two_measures: dict[str, Any]) -> None:
    found = find_entry(two_measures, "B", MatchKind.ID, "Measure")
    assert found is not None
    assert found["id"] == "B"


def test_find_entry_returns_none_when_absent(two_measures: dict[str, Any]) -> None:
    assert find_entry(two_measures, "C", MatchKind.ID, "Measure") is None


def test_find_entry_filters_on_resource_type(two_measures: dict[str, Any]) -> None:
    found = find_entry(two_measures, "C", MatchKind.ID, "Library")
    assert found is not None
    assert found["resourceType"] == "Library"
    assert find_entry(two_measures, "A", MatchKind.ID, "Library") is None


def test_find_entry_by_url_and_identifier(two_measures: dict[str, Any]) -> None:
    by_url = find_entry(
        two_measures, "http://example.com/Measure/A", MatchKind.URL, "Measure"
    )
    assert by_url is not None
    assert by_url["id"] == "A"

    by_identifier = find_entry(
        two_measures, "http://example.com/ids|b-1", MatchKind.IDENTIFIER, "Measure"
    )
    assert by_identifier is not None
    assert by_identifier["id"] == "B"


def test_find_entry_accepts_match_kind_as_string(two_measures: dict[str, Any]) -> None:
    found = find_entry(two_measures, "A", "id", "Measure")  # type: ignore[arg-type]
    assert found is not None


def test_find_entry_returns_first_match() -> None:
    bundle = make_bundle(
        {"resourceType": "Measure", "id": "same", "version": "1"},
        {"resourceType": "Measure", "id": "same", "version": "2"},
    )
    found = find_entry(bundle, "same", MatchKind.ID, "Measure")
    assert found is not None
    assert found["version"] == "1"


def test_retrieve_helpers_pick_resource_type(two_measures: dict[str, Any]) -> None:
    assert retrieve_measure_from_bundle("A", MatchKind.ID, two_measures) is not None
    assert retrieve_root_library_from_bundle("A", MatchKind.ID, two_measures) is None
    library = retrieve_root_library_from_bundle("C", MatchKind.ID, two_measures)
    assert library is not None


def test_find_entry_strict_identifier_mode() -> None:
    bundle = make_bundle(
        {
            "resourceType": "Library",
            "id": "lib",
            "identifier": [
                {"system": "system-a", "value": "value-x"},
                {"system": "system-b", "value": "value-y"},
            ],
        }
    )
    token = "system-a|value-y"
    assert find_entry(bundle, token, MatchKind.IDENTIFIER, "Library") is not None
    assert (
        find_entry(
            bundle, token, MatchKind.IDENTIFIER, "Library", IdentifierMatch.STRICT
        )
        is None
    )


def test_find_entry_handles_bundle_without_entries() -> None:
    assert find_entry({"resourceType": "Bundle"}, "A", MatchKind.ID, "Measure") is None


# -----------------------------
# related_artifacts_present
# -----------------------------
def test_model_info_dependency_is_not_required() -> None:
    bundle = make_bundle(make_library(depends_on=[MODEL_INFO_REFERENCE]))
    assert related_artifacts_present(bundle) is True


def test_versioned_dependency_present() -> None:
    bundle = make_bundle(
        make_library(depends_on=[f"{DEPENDENCY_URL}|2.0.0"]),
        make_library(url=DEPENDENCY_URL, version="2.0.0"),
    )
    assert related_artifacts_present(bundle) is True


def test_versioned_dependency_with_wrong_version_is_missing() -> None:
    bundle = make_bundle(
        make_library(depends_on=[f"{DEPENDENCY_URL}|2.0.0"]),
        make_library(url=DEPENDENCY_URL, version="3.0.0"),
    )
    assert related_artifacts_present(bundle) is False


def test_unversioned_dependency_matches_any_version() -> None:
    bundle = make_bundle(
        make_library(depends_on=[DEPENDENCY_URL]),
        make_library(url=DEPENDENCY_URL, version="3.0.0"),
    )
    assert related_artifacts_present(bundle) is True


def test_missing_library_dependency() -> None:
    bundle = make_bundle(make_library(depends_on=[f"{DEPENDENCY_URL}|2.0.0"]))
    assert related_artifacts_present(bundle) is False
    assert missing_related_artifacts(bundle) == [f"{DEPENDENCY_URL}|2.0.0"]


def test_valuesets_only_required_when_requested() -> None:
    bundle = make_bundle(make_library(depends_on=[VALUESET_URL]))
    assert related_artifacts_present(bundle, include_valuesets=False) is True
    assert related_artifacts_present(bundle, include_valuesets=True) is False

    with_valueset = make_bundle(
        make_library(depends_on=[VALUESET_URL]),
        {"resourceType": "ValueSet", "url": VALUESET_URL, "version": "1"},
    )
    assert related_artifacts_present(with_valueset, include_valuesets=True) is True


def test_non_depends_on_artifacts_are_ignored() -> None:
    library = make_library()
    library["relatedArtifact"] = [
        {"type": "composed-of", "resource": f"{DEPENDENCY_URL}|1.0.0"},
        {"type": "documentation", "display": "no resource"},
    ]
    assert related_artifacts_present(make_bundle(library)) is True


def test_dependencies_of_non_library_resources_are_ignored() -> None:
    measure = make_library(depends_on=[DEPENDENCY_URL])
    measure["resourceType"] = "Measure"
    assert related_artifacts_present(make_bundle(measure)) is True


def test_shared_dependency_is_collected_once() -> None:
    bundle = make_bundle(
        make_library(depends_on=[DEPENDENCY_URL]),
        make_library(
            url="http://example.com/Library/other", depends_on=[DEPENDENCY_URL]
        ),
    )
    assert collect_related_artifacts(bundle) == {DEPENDENCY_URL}


def test_result_is_stable_across_calls() -> None:
    bundle = make_bundle(
        make_library(depends_on=[f"{DEPENDENCY_URL}|2.0.0", VALUESET_URL]),
        make_library(url=DEPENDENCY_URL, version="2.0.0"),
    )
    snapshot = copy.deepcopy(bundle)
    first = related_artifacts_present(bundle, include_valuesets=True)
    second = related_artifacts_present(bundle, include_valuesets=True)
    assert first == second is False
    assert bundle == snapshot


def test_missing_artifacts_are_logged(caplog: pytest.LogCaptureFixture) -> None:
    bundle = make_bundle(make_library(depends_on=[DEPENDENCY_URL]))
    with caplog.at_level(logging.WARNING):
        related_artifacts_present(bundle)
    assert DEPENDENCY_URL in caplog.text


# -----------------------------
# reference detection
# -----------------------------
@pytest.mark.parametrize(
    ("reference", "expected"),
    [
        ("Library/abc", "Library"),
        ("http://example.com/fhir/Library/abc", "Library"),
        ("http://example.com/fhir/Library/abc|1.0.0", "Library"),
        ("http://cts.nlm.nih.gov/fhir/ValueSet/2.16.840.1.113883", "ValueSet"),
        ("http://example.com/library/abc", None),
        ("http://example.com/Library-content/abc", None),
        ("abc", None),
        ("http://example.com/fhir/Library/", None),
    ],
)
def test_reference_resource_type(reference: str, expected: str | None) -> None:
    assert reference_resource_type(reference) == expected


def test_structured_detection_avoids_substring_false_positive() -> None:
    # The path mentions "Library" but the reference is to a Measure.
    reference = "http://example.com/Library-content/Measure/abc"
    bundle = make_bundle(make_library(depends_on=[reference]))

    assert related_artifacts_present(bundle) is False
    assert (
        related_artifacts_present(bundle, detection=ReferenceDetection.STRUCTURED)
        is True
    )


def test_structured_detection_still_finds_missing_libraries() -> None:
    bundle = make_bundle(make_library(depends_on=[f"{DEPENDENCY_URL}|2.0.0"]))
    assert (
        related_artifacts_present(bundle, detection=ReferenceDetection.STRUCTURED)
        is False
    )
