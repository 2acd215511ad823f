"""FHIR Parameters resource."""

from typing import NotRequired, TypedDict


class Parameter(TypedDict):
    name: str
    valueString: NotRequired[str]
    valueUrl: NotRequired[str]
    valueBoolean: NotRequired[bool]


class Parameters(TypedDict):
    resourceType: str
    parameter: list[Parameter]
