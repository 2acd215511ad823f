"""
``$package`` tests for Measure (``Measure/$package``) and Library
(``Library/$cqfm.package``).

The same scenarios are run for both resource types, with and without
``include-terminology=true``:

01  POST by id in the url; root resource found by id
02  url in the Parameters body
03  identifier in the Parameters body
04  id in the url plus url, identifier and optional version in the body
05  every depends-on artifact of every packaged Library is present
06  404 OperationOutcome for an unknown id
07  400 OperationOutcome when no identification is given
08  (plain groups only) closure including ValueSets with include-terminology
"""

from __future__ import annotations

from dataclasses import dataclass

from fhir.parameters import Parameter, Parameters

from measure_repository_test_kit.assertions import (
    AssertionFailure,
    assert_,
    assert_error,
    assert_success,
)
from measure_repository_test_kit.common.common import (
    FHIR_JSON,
    INVALID_ID,
    FhirResource,
    MatchKind,
)
from measure_repository_test_kit.runner import Input, TestCase, TestContext, TestGroup
from measure_repository_test_kit.utils.general_utils import (
    resource_has_matching_identifier,
)
from measure_repository_test_kit.utils.package_utils import (
    find_entry,
    missing_related_artifacts,
)

INCLUDE_TERMINOLOGY = {"include-terminology": "true"}


@dataclass(frozen=True)
class PackageTarget:
    """Naming for one resource type's package operation."""

    resource_type: str
    operation: str
    headers: tuple[tuple[str, str], ...] = ()

    @property
    def kind(self) -> str:
        return self.resource_type.lower()


MEASURE = PackageTarget("Measure", "$package")
LIBRARY = PackageTarget("Library", "$cqfm.package", (("content-type", FHIR_JSON),))


def identification_parameters(
    url: str | None = None,
    identifier: str | None = None,
    version: str | None = None,
) -> Parameters:
    """Build the Parameters body identifying an artifact by url/identifier/version."""
    parameter: list[Parameter] = []
    if url is not None:
        parameter.append({"name": "url", "valueUrl": url})
    if identifier is not None:
        parameter.append({"name": "identifier", "valueString": identifier})
    if version is not None:
        parameter.append({"name": "version", "valueString": version})
    return {"resourceType": "Parameters", "parameter": parameter}


def _root_resource(
    context: TestContext, target: PackageTarget, value: str, match_kind: MatchKind
) -> FhirResource:
    response = context.last_response
    assert_success(response, "Bundle", 200)
    root = find_entry(
        response.resource or {},
        value,
        match_kind,
        target.resource_type,
        context.options.identifier_match,
    )
    if root is None:
        raise AssertionFailure(
            f"No {target.resource_type} found in bundle with {match_kind}: {value}",
        )
    return root


def _assert_closure(context: TestContext, include_valuesets: bool) -> None:
    response = context.last_response
    assert_success(response, "Bundle", 200)
    missing = missing_related_artifacts(
        response.resource or {},
        include_valuesets=include_valuesets,
        detection=context.options.reference_detection,
    )
    assert_(not missing, f"Related artifacts missing from bundle: {', '.join(missing)}")


def build_package_group(
    target: PackageTarget, include_terminology: bool = False
) -> TestGroup:
    kind = target.kind
    resource_type = target.resource_type
    operation = target.operation
    params = INCLUDE_TERMINOLOGY if include_terminology else None
    suffix = " and include-terminology=true" if include_terminology else ""

    if include_terminology:
        group_id = f"{kind}_include_terminology"
        prefix = f"{kind}-include-terminology"
        request_name = f"{kind}_package_include_terminology"
    else:
        group_id = f"{kind}_package"
        prefix = f"{kind}-package"
        request_name = f"{kind}_package"

    id_input = Input(f"{kind}_id", f"{resource_type} id")
    url_input = Input(f"{kind}_url", f"{resource_type} url")
    identifier_input = Input(f"{kind}_identifier", f"{resource_type} identifier")
    version_input = Input(f"{kind}_version", f"{resource_type} version", optional=True)

    def by_id(context: TestContext) -> None:
        resource_id = context.inputs[id_input.name]
        context.fhir_operation(
            f"{resource_type}/{resource_id}/{operation}", params=params
        )
        _root_resource(context, target, resource_id, MatchKind.ID)

    def by_url(context: TestContext) -> None:
        url = context.inputs[url_input.name]
        context.fhir_operation(
            f"{resource_type}/{operation}",
            body=identification_parameters(url=url),
            params=params,
        )
        _root_resource(context, target, url, MatchKind.URL)

    def by_identifier(context: TestContext) -> None:
        identifier = context.inputs[identifier_input.name]
        context.fhir_operation(
            f"{resource_type}/{operation}",
            body=identification_parameters(identifier=identifier),
            params=params,
        )
        _root_resource(context, target, identifier, MatchKind.IDENTIFIER)

    def by_all_parameters(context: TestContext) -> None:
        resource_id = context.inputs[id_input.name]
        url = context.inputs[url_input.name]
        identifier = context.inputs[identifier_input.name]
        version = context.input(version_input.name)

        context.fhir_operation(
            f"{resource_type}/{resource_id}/{operation}",
            body=identification_parameters(url, identifier, version),
            params=params,
        )
        root = _root_resource(context, target, url, MatchKind.URL)
        assert_(
            root.get("id") == resource_id,
            f"No {resource_type} found in bundle with id: {resource_id}",
        )
        assert_(
            resource_has_matching_identifier(
                root, identifier, context.options.identifier_match
            ),
            f"No {resource_type} found in bundle with identifier: {identifier}",
        )
        if version is not None:
            assert_(
                root.get("version") == version,
                f"No {resource_type} found in bundle with version: {version}",
            )

    def artifacts_present(context: TestContext) -> None:
        _assert_closure(context, include_valuesets=include_terminology)

    def unknown_id(context: TestContext) -> None:
        response = context.fhir_operation(
            f"{resource_type}/{INVALID_ID}/{operation}", params=params
        )
        assert_error(response, 404)

    def no_identification(context: TestContext) -> None:
        response = context.fhir_operation(f"{resource_type}/{operation}", params=params)
        assert_error(response, 400)

    def artifacts_with_terminology(context: TestContext) -> None:
        resource_id = context.inputs[id_input.name]
        context.fhir_operation(
            f"{resource_type}/{resource_id}/{operation}", params=INCLUDE_TERMINOLOGY
        )
        _root_resource(context, target, resource_id, MatchKind.ID)
        _assert_closure(context, include_valuesets=True)

    optional = include_terminology
    tests = [
        TestCase(
            id=f"{prefix}-01",
            title=f"200 response and JSON Bundle body including {resource_type} "
            "resource for POST by id in url",
            description=f"returned response has status code 200 and valid JSON FHIR "
            f"Bundle including the {resource_type} resource in body{suffix}",
            run=by_id,
            inputs=(id_input,),
            optional=optional,
            makes_request=request_name,
        ),
        TestCase(
            id=f"{prefix}-02",
            title="200 response and JSON Bundle body for POST with url in body",
            description=f"returned response has status code 200 and included "
            f"{resource_type} matches url parameter{suffix}",
            run=by_url,
            inputs=(url_input,),
            optional=optional,
        ),
        TestCase(
            id=f"{prefix}-03",
            title="200 response and JSON Bundle body for POST with identifier in body",
            description=f"returned response has status code 200 and included "
            f"{resource_type} matches identifier parameter{suffix}",
            run=by_identifier,
            inputs=(identifier_input,),
            optional=optional,
        ),
        TestCase(
            id=f"{prefix}-04",
            title="200 response and JSON Bundle body for POST parameters url, "
            "identifier, and version in body and id in url",
            description=f"returned response has status code 200 and included "
            f"{resource_type} matches parameters url, identifier, and version"
            f"{suffix}. Verifies the server supports SHALL parameters for the "
            "operation",
            run=by_all_parameters,
            inputs=(id_input, url_input, identifier_input, version_input),
            optional=optional,
        ),
        TestCase(
            id=f"{prefix}-05",
            title="All related artifacts present"
            + (" including valuesets" if include_terminology else ""),
            description="returned bundle includes all related artifacts for all "
            "libraries" + (" including valuesets" if include_terminology else ""),
            run=artifacts_present,
            optional=optional,
            uses_request=request_name,
        ),
        TestCase(
            id=f"{prefix}-06",
            title=f"Throws 404 when no {resource_type} on server matches id",
            description=f"returns 404 status code with OperationOutcome when no "
            f"{resource_type} exists with passed-in id{suffix}",
            run=unknown_id,
            optional=optional,
        ),
        TestCase(
            id=f"{prefix}-07",
            title="Throws 400 when no id, url, or identifier provided",
            description="returns 400 status code with OperationOutcome when no id, "
            f"url, or identifier provided{suffix}",
            run=no_identification,
            optional=optional,
        ),
    ]
    if not include_terminology:
        tests.append(
            TestCase(
                id=f"{prefix}-08",
                title="All related artifacts present including valuesets when "
                "include-terminology=true",
                description="returned bundle includes all related artifacts for all "
                "libraries including valuesets with include-terminology=true",
                run=artifacts_with_terminology,
                inputs=(id_input,),
                optional=True,
            )
        )

    title = f"{resource_type} {operation}"
    if include_terminology:
        title = f"{resource_type} include terminology {operation}"
    return TestGroup(
        id=group_id,
        title=title,
        description=f"Ensure measure repository service can execute the {operation} "
        f"operation to the {resource_type} endpoint{suffix}",
        tests=tuple(tests),
        headers=dict(target.headers),
    )
