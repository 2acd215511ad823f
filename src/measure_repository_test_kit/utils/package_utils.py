"""
Helpers for inspecting Bundles returned by ``$package`` style operations.

A package Bundle holds a root Measure or Library plus every artifact it
depends on. These helpers locate the root resource and check that the
``depends-on`` closure declared by the packaged Libraries is present.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterator, Mapping
from enum import StrEnum
from typing import Any, cast

from fhir.bundle import BundleEntry
from fhir.related_artifact import RelatedArtifact

from measure_repository_test_kit.common.common import FhirResource, MatchKind
from measure_repository_test_kit.utils.general_utils import (
    IdentifierMatch,
    resource_has_matching_identifier,
)

logger = logging.getLogger(__name__)

# Model info is resolved by the CQL engine itself and is never packaged.
MODEL_INFO_REFERENCE = "http://fhir.org/guides/cqf/common/Library/FHIR-ModelInfo|4.0.1"


class ReferenceDetection(StrEnum):
    """
    How the resource type of a ``relatedArtifact.resource`` reference is found.

    ``SUBSTRING`` treats any reference containing the type name as that type.
    ``STRUCTURED`` parses ``Type/id`` or ``.../Type/id[|version]`` and compares
    the type segment exactly.
    """

    SUBSTRING = "substring"
    STRUCTURED = "structured"


def _entries(bundle: Mapping[str, Any]) -> Iterator[FhirResource]:
    entries = cast("list[BundleEntry]", bundle.get("entry") or [])
    for entry in entries:
        resource = entry.get("resource")
        if resource:
            yield resource


def _matches_id(resource: FhirResource, value: str, _: IdentifierMatch) -> bool:
    return resource.get("id") == value


def _matches_url(resource: FhirResource, value: str, _: IdentifierMatch) -> bool:
    return resource.get("url") == value


_MATCHERS: dict[MatchKind, Callable[[FhirResource, str, IdentifierMatch], bool]] = {
    MatchKind.ID: _matches_id,
    MatchKind.URL: _matches_url,
    MatchKind.IDENTIFIER: resource_has_matching_identifier,
}


def find_entry(
    bundle: Mapping[str, Any],
    identifier_value: str,
    match_kind: MatchKind,
    resource_type: str,
    identifier_match: IdentifierMatch = IdentifierMatch.LOOSE,
) -> FhirResource | None:
    """
    Find the first ``resource_type`` entry in ``bundle`` matching ``identifier_value``.

    :param bundle: FHIR Bundle JSON.
    :param identifier_value: The id, url or identifier token to look for.
    :param match_kind: Which field ``identifier_value`` is compared against.
    :param resource_type: Only entries of this resourceType are considered.
    :param identifier_match: Matching mode used for ``MatchKind.IDENTIFIER``.
    :returns: The first matching resource, or ``None`` if there is none.
    """
    matcher = _MATCHERS[MatchKind(match_kind)]
    for resource in _entries(bundle):
        if resource.get("resourceType") != resource_type:
            continue
        if matcher(resource, identifier_value, identifier_match):
            return resource
    return None


def retrieve_measure_from_bundle(
    identifier_value: str,
    match_kind: MatchKind,
    bundle: Mapping[str, Any],
    identifier_match: IdentifierMatch = IdentifierMatch.LOOSE,
) -> FhirResource | None:
    return find_entry(
        bundle, identifier_value, match_kind, "Measure", identifier_match
    )


def retrieve_root_library_from_bundle(
    identifier_value: str,
    match_kind: MatchKind,
    bundle: Mapping[str, Any],
    identifier_match: IdentifierMatch = IdentifierMatch.LOOSE,
) -> FhirResource | None:
    return find_entry(
        bundle, identifier_value, match_kind, "Library", identifier_match
    )


def reference_resource_type(reference: str) -> str | None:
    """
    Parse the resource type out of a FHIR reference or canonical URL.

    ``Library/abc``, ``http://example.org/fhir/Library/abc`` and
    ``http://example.org/fhir/Library/abc|1.0.0`` all yield ``"Library"``.

    :param reference: Reference string, optionally suffixed with ``|version``.
    :returns: The resource type segment, or ``None`` if there is none.
    """
    path = reference.split("|", 1)[0].rstrip("/")
    segments = path.split("/")
    if len(segments) < 2 or not segments[-1]:
        return None
    resource_type = segments[-2]
    # Resource types are capitalised names with no punctuation.
    if not resource_type.isalpha() or not resource_type[0].isupper():
        return None
    return resource_type


def _references_type(
    reference: str, resource_type: str, detection: ReferenceDetection
) -> bool:
    if detection is ReferenceDetection.STRUCTURED:
        return reference_resource_type(reference) == resource_type
    return resource_type in reference


def collect_related_artifacts(
    bundle: Mapping[str, Any],
    include_valuesets: bool = False,
    detection: ReferenceDetection = ReferenceDetection.SUBSTRING,
) -> set[str]:
    """
    Collect the ``depends-on`` references declared by every Library in ``bundle``.

    Library references are always collected; ValueSet references only when
    ``include_valuesets`` is set. The FHIR model info Library is excluded.

    :returns: The deduplicated set of reference strings.
    """
    wanted = ["Library", "ValueSet"] if include_valuesets else ["Library"]
    references: set[str] = set()

    for resource in _entries(bundle):
        if resource.get("resourceType") != "Library":
            continue
        related = cast("list[RelatedArtifact]", resource.get("relatedArtifact") or [])
        for artifact in related:
            reference = artifact.get("resource")
            if artifact.get("type") != "depends-on" or not reference:
                continue
            if reference == MODEL_INFO_REFERENCE:
                continue
            if any(_references_type(reference, rt, detection) for rt in wanted):
                references.add(reference)

    return references


def _split_reference(reference: str) -> tuple[str, str | None]:
    url, _, version = reference.partition("|")
    return url, version or None


def _artifact_in_bundle(bundle: Mapping[str, Any], reference: str) -> bool:
    url, version = _split_reference(reference)
    return any(
        resource.get("url") == url
        and (version is None or resource.get("version") == version)
        for resource in _entries(bundle)
    )


def missing_related_artifacts(
    bundle: Mapping[str, Any],
    include_valuesets: bool = False,
    detection: ReferenceDetection = ReferenceDetection.SUBSTRING,
) -> list[str]:
    """
    List the dependencies declared in ``bundle`` that are not packaged in it.

    Only one level of ``Library -> relatedArtifact`` edges is followed, across
    all Libraries already present; nothing is fetched.

    :returns: Sorted list of unresolved reference strings.
    """
    references = collect_related_artifacts(bundle, include_valuesets, detection)
    missing = sorted(ref for ref in references if not _artifact_in_bundle(bundle, ref))
    if missing:
        logger.warning(
            "%d of %d related artifacts missing from bundle: %s",
            len(missing),
            len(references),
            ", ".join(missing),
        )
    return missing


def related_artifacts_present(
    bundle: Mapping[str, Any],
    include_valuesets: bool = False,
    detection: ReferenceDetection = ReferenceDetection.SUBSTRING,
) -> bool:
    """
    Check that every ``depends-on`` artifact of every packaged Library is present.

    A reference of the form ``url|version`` requires an entry with that url and
    version; a bare ``url`` is satisfied by any version.

    :param bundle: FHIR Bundle JSON returned by ``$package``.
    :param include_valuesets: Also require ValueSet dependencies to be present.
    :param detection: How Library and ValueSet references are recognised.
    :returns: ``True`` if nothing is missing.
    """
    return not missing_related_artifacts(bundle, include_valuesets, detection)
