"""FHIR Measure resource."""

from typing import NotRequired, TypedDict

from fhir.identifier import Identifier


class Measure(TypedDict):
    resourceType: str
    id: NotRequired[str]
    url: NotRequired[str]
    version: NotRequired[str]
    name: NotRequired[str]
    title: NotRequired[str]
    status: NotRequired[str]
    description: NotRequired[str]
    identifier: NotRequired[list[Identifier]]
    library: NotRequired[list[str]]
