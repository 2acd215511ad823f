"""FHIR Library resource."""

from typing import NotRequired, TypedDict

from fhir.coding import CodeableConcept, Coding
from fhir.identifier import Identifier
from fhir.related_artifact import RelatedArtifact


class CodeFilter(TypedDict):
    path: NotRequired[str]
    valueSet: NotRequired[str]
    code: NotRequired[list[Coding]]


class DataRequirement(TypedDict):
    type: str
    codeFilter: NotRequired[list[CodeFilter]]


class Library(TypedDict):
    resourceType: str
    id: NotRequired[str]
    url: NotRequired[str]
    version: NotRequired[str]
    name: NotRequired[str]
    title: NotRequired[str]
    status: NotRequired[str]
    description: NotRequired[str]
    identifier: NotRequired[list[Identifier]]
    type: NotRequired[CodeableConcept]
    relatedArtifact: NotRequired[list[RelatedArtifact]]
    dataRequirement: NotRequired[list[DataRequirement]]
