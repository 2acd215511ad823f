"""FHIR Identifier type."""

from typing import NotRequired, TypedDict


class Identifier(TypedDict):
    system: NotRequired[str]
    value: NotRequired[str]
