"""
Assertion primitives used by the test groups.

Each assertion raises :class:`AssertionFailure` when its condition does not
hold. The runner records the failing test and carries on with the next one.
"""

import json
from dataclasses import dataclass
from typing import Any, cast

from fhir.library import Library
from fhir.operation_outcome import OperationOutcome

from measure_repository_test_kit.fhir_client import FhirResponse


@dataclass
class AssertionFailure(Exception):
    """
    Raised when a test assertion does not hold.

    :param message: Human-readable reason for the failure.
    """

    message: str

    def __str__(self) -> str:
        return self.message


def assert_(condition: Any, message: str = "Assertion failed") -> None:
    if not condition:
        raise AssertionFailure(message)


def assert_response_status(response: FhirResponse, expected_status: int) -> None:
    assert_(
        response.status_code == expected_status,
        f"Unexpected response status: expected {expected_status}, "
        f"but received {response.status_code}",
    )


def assert_resource_type(response: FhirResponse, resource_type: str) -> None:
    assert_(
        response.resource_type == resource_type,
        f"Unexpected resource type: expected {resource_type}, "
        f"but received {response.resource_type}",
    )


def assert_valid_json(body: str) -> None:
    try:
        json.loads(body)
    except (TypeError, json.JSONDecodeError) as err:
        raise AssertionFailure(f"Invalid JSON: {err}") from err


def assert_success(
    response: FhirResponse, resource_type: str, expected_status: int = 200
) -> None:
    assert_response_status(response, expected_status)
    assert_resource_type(response, resource_type)
    assert_valid_json(response.body)


def assert_error(response: FhirResponse, expected_status: int) -> None:
    """
    Assert the server rejected the request with an error OperationOutcome.

    :param response: Captured response.
    :param expected_status: Expected HTTP status code (e.g. 400, 404).
    :raises AssertionFailure: If status, body or severity are not as expected.
    """
    assert_response_status(response, expected_status)
    assert_valid_json(response.body)
    assert_resource_type(response, "OperationOutcome")
    outcome = cast("OperationOutcome", response.resource)
    issues = outcome.get("issue") or []
    assert_(
        bool(issues) and issues[0].get("severity") == "error",
        "Expected OperationOutcome with an issue of severity 'error'",
    )


def assert_dr_success(
    response: FhirResponse, require_data_requirement: bool = False
) -> None:
    """
    Assert a ``$data-requirements`` call returned a module-definition Library.

    :param response: Captured response.
    :param require_data_requirement: Also require a non-empty ``dataRequirement``.
    """
    assert_success(response, "Library", 200)
    library = cast("Library", response.resource)
    codings = (library.get("type") or {}).get("coding") or []
    assert_(
        any(coding.get("code") == "module-definition" for coding in codings),
        "Returned Library is not of type module-definition",
    )
    if require_data_requirement:
        assert_(
            bool(library.get("dataRequirement")),
            "Returned Library has no dataRequirement entries",
        )


def assert_dr_failure(response: FhirResponse, expected_status: int = 400) -> None:
    assert_error(response, expected_status)
