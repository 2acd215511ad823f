"""
In-memory Measure Repository Service stub.

The stub does **not** implement the full Measure Repository Service API, nor
full FHIR validation. It implements just enough for the test kit's own tests:

* ``GET /metadata``
* ``GET /{Measure|Library}/{id}``
* ``POST /Measure/[{id}/]$package`` and ``POST /Library/[{id}/]$cqfm.package``,
  with optional ``include-terminology=true``
* ``POST /{Measure|Library}/[{id}/]$data-requirements``

Artifacts are identified by id in the path and/or ``url``, ``identifier`` and
``version`` in a Parameters body. Unknown artifacts give 404, missing
identification gives 400, both as error OperationOutcomes.

:meth:`MeasureRepositoryStub.get` and :meth:`MeasureRepositoryStub.post` take
the same arguments as :func:`requests.get`/:func:`requests.post`, so they can
replace ``FhirClient.get_method``/``post_method`` directly.
"""

from __future__ import annotations

import copy
import json
import re
from collections.abc import Mapping
from http.client import responses as http_responses
from typing import Any
from urllib.parse import parse_qsl, urlsplit

from fhir.bundle import Bundle
from fhir.library import Library
from fhir.measure import Measure
from fhir.operation_outcome import OperationOutcome
from measure_repository_test_kit.common.common import FHIR_JSON, json_str
from measure_repository_test_kit.utils.general_utils import split_identifier
from measure_repository_test_kit.utils.package_utils import MODEL_INFO_REFERENCE
from requests import Response
from requests.structures import CaseInsensitiveDict

BASE = "http://example.com"
IDENTIFIER_SYSTEM = "http://example.com/identifiers"
LIBRARY_TYPE_SYSTEM = "http://terminology.hl7.org/CodeSystem/library-type"

_OPERATION_ON_INSTANCE = re.compile(
    r"/(?P<type>Measure|Library)/(?P<id>[^/$]+)/(?P<op>\$[\w.-]+)$"
)
_OPERATION_ON_TYPE = re.compile(r"/(?P<type>Measure|Library)/(?P<op>\$[\w.-]+)$")
_READ = re.compile(r"/(?P<type>[A-Z][A-Za-z]+)/(?P<id>[^/$]+)$")

_PACKAGE_OPERATIONS = {"Measure": "$package", "Library": "$cqfm.package"}
_DATA_REQUIREMENTS_PARAMS = {"periodStart", "periodEnd"}


def _create_response(
    status_code: int,
    json_data: Mapping[str, Any],
    headers: dict[str, str] | None = None,
) -> Response:
    """
    Create a :class:`requests.Response` object for the stub.

    :param status_code: HTTP status code.
    :param json_data: JSON body data.
    :param headers: Response headers dictionary.
    :return: A :class:`requests.Response` instance.
    """
    response = Response()
    response.status_code = status_code
    response.headers = CaseInsensitiveDict(headers or {"Content-Type": FHIR_JSON})
    response._content = json.dumps(json_data).encode("utf-8")  # noqa: SLF001
    response.encoding = "utf-8"
    response.reason = http_responses.get(status_code, "Unknown")
    return response


def _operation_outcome(status_code: int, code: str, diagnostics: str) -> Response:
    outcome: OperationOutcome = {
        "resourceType": "OperationOutcome",
        "issue": [{"severity": "error", "code": code, "diagnostics": diagnostics}],
    }
    return _create_response(status_code, outcome)


class MeasureRepositoryStub:
    """
    Minimal in-memory Measure Repository Service.

    Seeded with one Measure whose Library depends on a helper Library, the
    FHIR model info Library (never packaged) and two ValueSets.
    """

    MEASURE_ID = "example-measure"
    MEASURE_URL = f"{BASE}/Measure/example-measure"
    MEASURE_IDENTIFIER = f"{IDENTIFIER_SYSTEM}|measure-1"
    LIBRARY_ID = "example-library"
    LIBRARY_URL = f"{BASE}/Library/example-library"
    LIBRARY_IDENTIFIER = f"{IDENTIFIER_SYSTEM}|library-1"
    HELPER_LIBRARY_URL = f"{BASE}/Library/helper-library"
    CONDITION_VALUESET_URL = f"{BASE}/ValueSet/diabetes-codes"
    ENCOUNTER_VALUESET_URL = f"{BASE}/ValueSet/encounter-codes"
    VERSION = "1.0.0"

    def __init__(self) -> None:
        # Internal store: (resourceType, id) -> resource
        self._resources: dict[tuple[str, str], dict[str, Any]] = {}
        # Canonical urls left out of $package responses, to simulate a broken
        # server.
        self.omit_from_package: set[str] = set()
        self._seed_default_resources()

    def _seed_default_resources(self) -> None:
        """Seed the stub with a Measure and its dependency closure."""
        measure: Measure = {
            "resourceType": "Measure",
            "id": self.MEASURE_ID,
            "url": self.MEASURE_URL,
            "version": self.VERSION,
            "status": "active",
            "identifier": [{"system": IDENTIFIER_SYSTEM, "value": "measure-1"}],
            "library": [f"{self.LIBRARY_URL}|{self.VERSION}"],
        }
        self.upsert_resource(measure)
        self.upsert_resource(
            {
                "resourceType": "Library",
                "id": self.LIBRARY_ID,
                "url": self.LIBRARY_URL,
                "version": self.VERSION,
                "status": "active",
                "identifier": [{"system": IDENTIFIER_SYSTEM, "value": "library-1"}],
                "type": {"coding": [{"code": "logic-library"}]},
                "relatedArtifact": [
                    {
                        "type": "depends-on",
                        "resource": f"{self.HELPER_LIBRARY_URL}|{self.VERSION}",
                    },
                    {"type": "depends-on", "resource": MODEL_INFO_REFERENCE},
                    {"type": "depends-on", "resource": self.CONDITION_VALUESET_URL},
                ],
                "dataRequirement": [
                    {
                        "type": "Condition",
                        "codeFilter": [
                            {"path": "code", "valueSet": self.CONDITION_VALUESET_URL}
                        ],
                    },
                    {
                        "type": "Encounter",
                        "codeFilter": [
                            {
                                "path": "type",
                                "code": [
                                    {
                                        "system": "http://snomed.info/sct",
                                        "code": "185463005",
                                    }
                                ],
                            }
                        ],
                    },
                ],
            }
        )
        self.upsert_resource(
            {
                "resourceType": "Library",
                "id": "helper-library",
                "url": self.HELPER_LIBRARY_URL,
                "version": self.VERSION,
                "status": "active",
                "type": {"coding": [{"code": "logic-library"}]},
                "relatedArtifact": [
                    {
                        "type": "depends-on",
                        "resource": f"{self.ENCOUNTER_VALUESET_URL}|2023",
                    },
                ],
            }
        )
        self.upsert_resource(
            {
                "resourceType": "ValueSet",
                "id": "diabetes-codes",
                "url": self.CONDITION_VALUESET_URL,
                "version": "20230101",
                "status": "active",
            }
        )
        self.upsert_resource(
            {
                "resourceType": "ValueSet",
                "id": "encounter-codes",
                "url": self.ENCOUNTER_VALUESET_URL,
                "version": "2023",
                "status": "active",
            }
        )

    def upsert_resource(self, resource: Mapping[str, Any]) -> None:
        self._resources[(resource["resourceType"], resource["id"])] = copy.deepcopy(
            dict(resource)
        )

    # --------------- requests-compatible entry points -----------------

    def get(
        self,
        url: str,
        headers: dict[str, str] | None = None,  # NOQA ARG002 (unused in stub)
        params: dict[str, str] | None = None,
        timeout: Any = None,  # NOQA ARG002 (unused in stub)
    ) -> Response:
        path, _ = self._split_url(url, params)

        if path.endswith("/metadata"):
            return self.capability_statement()

        match = _READ.search(path)
        if match:
            return self.read(match["type"], match["id"])

        return _operation_outcome(404, "not-found", f"Unknown path {path}")

    def post(
        self,
        url: str,
        headers: dict[str, str] | None = None,  # NOQA ARG002 (unused in stub)
        params: dict[str, str] | None = None,
        data: json_str | None = None,
        timeout: Any = None,  # NOQA ARG002 (unused in stub)
    ) -> Response:
        path, query = self._split_url(url, params)
        body = json.loads(data) if data else {}

        resource_id: str | None = None
        match = _OPERATION_ON_INSTANCE.search(path) or _OPERATION_ON_TYPE.search(path)
        if not match:
            return _operation_outcome(404, "not-found", f"Unknown path {path}")
        resource_type, operation = match["type"], match["op"]
        if "id" in match.groupdict():
            resource_id = match["id"]

        if operation == _PACKAGE_OPERATIONS[resource_type]:
            return self.package(
                resource_type,
                resource_id,
                body,
                include_terminology=query.get("include-terminology") == "true",
            )
        if operation == "$data-requirements":
            return self.data_requirements(resource_type, resource_id, body, query)

        return _operation_outcome(
            400, "not-supported", f"Operation {operation} is not supported"
        )

    @staticmethod
    def _split_url(
        url: str, params: dict[str, str] | None
    ) -> tuple[str, dict[str, str]]:
        parts = urlsplit(url)
        query = dict(parse_qsl(parts.query))
        query.update(params or {})
        return parts.path, query

    # --------------- interactions -----------------

    def capability_statement(self) -> Response:
        return _create_response(
            200,
            {
                "resourceType": "CapabilityStatement",
                "status": "active",
                "kind": "instance",
                "fhirVersion": "4.0.1",
                "format": ["json"],
            },
        )

    def read(self, resource_type: str, resource_id: str) -> Response:
        resource = self._resources.get((resource_type, resource_id))
        if resource is None:
            return _operation_outcome(
                404, "not-found", f"No {resource_type} with id {resource_id}"
            )
        return _create_response(200, resource)

    def package(
        self,
        resource_type: str,
        resource_id: str | None,
        body: dict[str, Any],
        include_terminology: bool = False,
    ) -> Response:
        root, error = self._identify(resource_type, resource_id, body)
        if error is not None:
            return error

        bundle: Bundle = {
            "resourceType": "Bundle",
            "type": "collection",
            "entry": [
                {"resource": resource}
                for resource in self._closure(root, include_terminology)
                if resource.get("url") not in self.omit_from_package
                or resource is root
            ],
        }
        return _create_response(200, bundle)

    def data_requirements(
        self,
        resource_type: str,
        resource_id: str | None,
        body: dict[str, Any],
        query: dict[str, str],
    ) -> Response:
        unknown = set(query) - _DATA_REQUIREMENTS_PARAMS
        if unknown:
            return _operation_outcome(
                400, "invalid", f"Unknown parameter(s): {', '.join(sorted(unknown))}"
            )
        if resource_id and "id" in self._parameter_values(body):
            return _operation_outcome(
                400, "invalid", "id must not be given in both the path and the body"
            )

        root, error = self._identify(resource_type, resource_id, body)
        if error is not None:
            return error

        requirements = [
            dr
            for resource in self._closure(root, include_terminology=False)
            if resource["resourceType"] == "Library"
            for dr in resource.get("dataRequirement", [])
        ]
        library: Library = {
            "resourceType": "Library",
            "status": "draft",
            "type": {
                "coding": [{"system": LIBRARY_TYPE_SYSTEM, "code": "module-definition"}]
            },
            "dataRequirement": requirements,
        }
        return _create_response(200, library)

    # --------------- internal helpers -----------------

    @staticmethod
    def _parameter_values(body: dict[str, Any]) -> dict[str, str]:
        values: dict[str, str] = {}
        for parameter in body.get("parameter", []):
            for key, value in parameter.items():
                if key.startswith("value"):
                    values[parameter["name"]] = value
        return values

    def _identify(
        self, resource_type: str, resource_id: str | None, body: dict[str, Any]
    ) -> tuple[dict[str, Any], None] | tuple[None, Response]:
        values = self._parameter_values(body)
        url = values.get("url")
        identifier = values.get("identifier")
        version = values.get("version")

        if not (resource_id or url or identifier):
            return None, _operation_outcome(
                400, "required", "Must provide id, url, or identifier"
            )

        for (stored_type, _), resource in self._resources.items():
            if stored_type != resource_type:
                continue
            if resource_id and resource.get("id") != resource_id:
                continue
            if url and resource.get("url") != url:
                continue
            if version and resource.get("version") != version:
                continue
            if identifier and not self._has_identifier(resource, identifier):
                continue
            return resource, None

        return None, _operation_outcome(
            404, "not-found", f"No {resource_type} matches the given parameters"
        )

    @staticmethod
    def _has_identifier(resource: dict[str, Any], identifier: str) -> bool:
        system, value = split_identifier(identifier)
        return any(
            (system is None or iden.get("system") == system)
            and (value is None or iden.get("value") == value)
            for iden in resource.get("identifier", [])
        )

    def _find_canonical(self, reference: str) -> dict[str, Any] | None:
        url, _, version = reference.partition("|")
        for resource in self._resources.values():
            if resource.get("url") == url and (
                not version or resource.get("version") == version
            ):
                return resource
        return None

    def _closure(
        self, root: dict[str, Any], include_terminology: bool
    ) -> list[dict[str, Any]]:
        """Root first, then every artifact reachable through depends-on links."""
        seen: dict[str, dict[str, Any]] = {}
        pending = [root]
        while pending:
            resource = pending.pop(0)
            key = f"{resource['resourceType']}/{resource['id']}"
            if key in seen:
                continue
            seen[key] = resource

            references = list(resource.get("library", []))
            references += [
                ra["resource"]
                for ra in resource.get("relatedArtifact", [])
                if ra.get("type") == "depends-on"
            ]
            for reference in references:
                dependency = self._find_canonical(reference)
                if dependency is None:
                    continue
                if dependency["resourceType"] == "ValueSet" and not include_terminology:
                    continue
                pending.append(dependency)

        return list(seen.values())
