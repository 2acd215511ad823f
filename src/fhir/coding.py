"""FHIR Coding and CodeableConcept types."""

from typing import NotRequired, TypedDict


class Coding(TypedDict):
    system: NotRequired[str]
    code: NotRequired[str]
    display: NotRequired[str]


class CodeableConcept(TypedDict):
    coding: NotRequired[list[Coding]]
    text: NotRequired[str]
