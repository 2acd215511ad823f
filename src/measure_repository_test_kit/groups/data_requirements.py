"""
``$data-requirements`` tests for the Measure and Library endpoints.

A successful call returns a Library of type ``module-definition`` describing
the data the artifact needs; failures return an error OperationOutcome.
"""

from __future__ import annotations

import json
from typing import cast

from fhir.library import DataRequirement
from fhir.parameters import Parameters

from measure_repository_test_kit.assertions import (
    AssertionFailure,
    assert_,
    assert_dr_failure,
    assert_dr_success,
)
from measure_repository_test_kit.common.common import FHIR_JSON, INVALID_ID
from measure_repository_test_kit.groups.package import identification_parameters
from measure_repository_test_kit.runner import Input, TestCase, TestContext, TestGroup
from measure_repository_test_kit.utils.data_requirements_utils import (
    get_dr_comparison_list,
)

OPERATION = "$data-requirements"

EMPTY_PARAMETERS: Parameters = {"resourceType": "Parameters", "parameter": []}

REPORTING_PERIOD = {"periodStart": "2019-01-01", "periodEnd": "2020-01-01"}


def parse_expected_data_requirements(raw: str) -> list[str]:
    """
    Parse the expected data requirements input.

    The input is a JSON array of comparison strings as produced by
    :func:`get_dr_comparison_list`, e.g.
    ``["Condition.code(http://snomed.info/sct|44054006)"]``.
    """
    try:
        parsed = json.loads(raw)
    except json.JSONDecodeError as err:
        raise AssertionFailure(
            f"Expected data requirements input is not valid JSON: {err}"
        ) from err
    if not isinstance(parsed, list) or not all(isinstance(p, str) for p in parsed):
        raise AssertionFailure(
            "Expected data requirements input must be a JSON array of strings"
        )
    return parsed


def build_data_requirements_group(resource_type: str) -> TestGroup:
    kind = resource_type.lower()
    if resource_type == "Measure":
        prefix = "data-requirements"
    else:
        prefix = f"{kind}-data-requirements"
    request_name = f"{kind}_data_requirements"
    # Library $data-requirements must also return dataRequirement entries.
    require_data_requirement = resource_type == "Library"

    id_input = Input(f"{kind}_id", f"{resource_type} id")
    url_input = Input(f"{kind}_url", f"{resource_type} url")
    identifier_input = Input(f"{kind}_identifier", f"{resource_type} identifier")
    version_input = Input(f"{kind}_version", f"{resource_type} version", optional=True)
    expected_input = Input(
        f"{kind}_expected_data_requirements",
        f"Expected {resource_type} data requirements (JSON array)",
    )

    def by_id(context: TestContext) -> None:
        response = context.fhir_operation(
            f"{resource_type}/{context.inputs[id_input.name]}/{OPERATION}",
            body=EMPTY_PARAMETERS,
        )
        assert_dr_success(response, require_data_requirement)

    def by_url(context: TestContext) -> None:
        response = context.fhir_operation(
            f"{resource_type}/{OPERATION}",
            body=identification_parameters(
                url=context.inputs[url_input.name],
                version=context.input(version_input.name),
            ),
        )
        assert_dr_success(response)

    def by_identifier(context: TestContext) -> None:
        response = context.fhir_operation(
            f"{resource_type}/{OPERATION}",
            body=identification_parameters(
                identifier=context.inputs[identifier_input.name]
            ),
        )
        assert_dr_success(response)

    def by_all_parameters(context: TestContext) -> None:
        response = context.fhir_operation(
            f"{resource_type}/{context.inputs[id_input.name]}/{OPERATION}",
            body=identification_parameters(
                url=context.inputs[url_input.name],
                identifier=context.inputs[identifier_input.name],
                version=context.input(version_input.name),
            ),
        )
        assert_dr_success(response)

    def with_reporting_period(context: TestContext) -> None:
        response = context.fhir_operation(
            f"{resource_type}/{context.inputs[id_input.name]}/{OPERATION}",
            body=EMPTY_PARAMETERS,
            params=REPORTING_PERIOD,
        )
        assert_dr_success(response)

    def unknown_id(context: TestContext) -> None:
        response = context.fhir_operation(
            f"{resource_type}/{INVALID_ID}/{OPERATION}", body=EMPTY_PARAMETERS
        )
        assert_dr_failure(response, expected_status=404)

    def no_identification(context: TestContext) -> None:
        response = context.fhir_operation(
            f"{resource_type}/{OPERATION}", body=EMPTY_PARAMETERS
        )
        assert_dr_failure(response, expected_status=400)

    def invalid_parameter(context: TestContext) -> None:
        response = context.fhir_operation(
            f"{resource_type}/{INVALID_ID}/{OPERATION}",
            body=EMPTY_PARAMETERS,
            params={"invalid": "false"},
        )
        assert_dr_failure(response, expected_status=400)

    def id_in_path_and_body(context: TestContext) -> None:
        resource_id = context.inputs[id_input.name]
        body: Parameters = {
            "resourceType": "Parameters",
            "parameter": [{"name": "id", "valueString": resource_id}],
        }
        response = context.fhir_operation(
            f"{resource_type}/{resource_id}/{OPERATION}", body=body
        )
        assert_dr_failure(response, expected_status=400)

    def matches_expected(context: TestContext) -> None:
        expected = parse_expected_data_requirements(context.inputs[expected_input.name])
        library = context.last_response.resource or {}
        data_requirements = cast(
            "list[DataRequirement]", library.get("dataRequirement") or []
        )
        actual = set(get_dr_comparison_list(data_requirements))
        missing = [dr for dr in expected if dr not in actual]
        assert_(
            not missing,
            f"Data requirements missing from response: {', '.join(missing)}",
        )

    tests = [
        TestCase(
            id=f"{prefix}-01",
            title=f"Check {OPERATION} with id returns 200",
            description=f"{OPERATION} returns 200 OK and Library of type "
            f"module-definition when given {resource_type} id",
            run=by_id,
            inputs=(id_input,),
            makes_request=request_name,
        ),
        TestCase(
            id=f"{prefix}-02",
            title=f"Check {OPERATION} with url returns 200",
            description=f"{OPERATION} returns 200 OK and Library of type "
            "module-definition when passed in a url",
            run=by_url,
            inputs=(url_input, version_input),
        ),
        TestCase(
            id=f"{prefix}-03",
            title=f"Check {OPERATION} with identifier returns 200",
            description=f"{OPERATION} returns 200 OK and Library of type "
            "module-definition when passed in an identifier",
            run=by_identifier,
            inputs=(identifier_input,),
        ),
    ]

    if resource_type == "Measure":
        tests += [
            TestCase(
                id=f"{prefix}-04",
                title=f"Check {OPERATION} accepts periodStart and periodEnd parameters",
                description=f"{OPERATION} returns 200 when passed periodStart and "
                "periodEnd parameters",
                run=with_reporting_period,
                inputs=(id_input,),
            ),
        ]
    else:
        tests += [
            TestCase(
                id=f"{prefix}-04",
                title=f"Check {OPERATION} with id in url and url, identifier, and "
                "version in body returns 200",
                description=f"{OPERATION} returns 200 when passed id in url and "
                "url, identifier, and version parameters",
                run=by_all_parameters,
                inputs=(id_input, url_input, identifier_input, version_input),
            ),
        ]

    tests += [
        TestCase(
            id=f"{prefix}-05",
            title=f"Check {OPERATION} returns 404 for invalid {kind} id",
            description=f"{OPERATION} returns 404 when passed a {kind} id which is "
            "not in the system",
            run=unknown_id,
        ),
        TestCase(
            id=f"{prefix}-06",
            title=f"Check {OPERATION} returns 400 for no identification info",
            description=f"{OPERATION} returns 400 when no id, url, or identifier "
            "is provided",
            run=no_identification,
        ),
    ]

    if resource_type == "Measure":
        tests.append(
            TestCase(
                id=f"{prefix}-07",
                title=f"Check {OPERATION} returns 400 for invalid parameter",
                description=f"{OPERATION} returns 400 when passed an invalid parameter",
                run=invalid_parameter,
            )
        )
    else:
        tests.append(
            TestCase(
                id=f"{prefix}-07",
                title="Throws 400 when id is included in both the path and as a "
                "FHIR parameter",
                description=f"{OPERATION} returns 400 status code with "
                "OperationOutcome when id is passed in both the url and the body",
                run=id_in_path_and_body,
                inputs=(id_input,),
            )
        )

    tests.append(
        TestCase(
            id=f"{prefix}-08",
            title="Returned data requirements include the expected entries",
            description="every expected data requirement (type, code filter path "
            "and code or value set) is present in the Library returned by the "
            f"{OPERATION} request by id",
            run=matches_expected,
            inputs=(expected_input,),
            optional=True,
            uses_request=request_name,
        )
    )

    headers = {"content-type": FHIR_JSON} if resource_type == "Library" else {}
    return TestGroup(
        id=f"{kind}_data_requirements",
        title=f"{resource_type} {OPERATION}",
        description=f"Ensure measure repository service can run "
        f"{resource_type}/{OPERATION} operation",
        tests=tuple(tests),
        headers=headers,
    )
