"""
Module: measure_repository_test_kit.fhir_client

Simple FHIR R4 client used by the test groups to talk to the Measure
Repository Service under test.

Usage:

    client = FhirClient(
        base_url="https://measure-repository.example.com/4_0_1",
        bearer_token="YOUR_ACCESS_TOKEN",
    )

    response = client.fhir_operation("Measure/example/$package")
    if response.status_code == 200:
        print(response.resource)

Non-2xx responses are returned rather than raised: checking them is the job of
the tests. Only transport failures raise :class:`ExternalServiceError`.
"""

from __future__ import annotations

import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, cast

import requests
from requests import Response

from measure_repository_test_kit.common.common import FHIR_JSON, FhirResource, json_str

logger = logging.getLogger(__name__)

RequestCallable = Callable[..., Response]


class ExternalServiceError(Exception):
    """
    Raised when a request to the server under test cannot be completed.

    Wraps requests.RequestException so callers are not coupled to requests
    exception types.
    """


@dataclass(frozen=True)
class FhirResponse:
    """
    Record of one request/response exchange with the server under test.

    The fields cannot be reassigned and the headers are read-only. The parsed
    ``resource`` is a plain dict shared by every test that reads a stored
    request, so assertions must not modify it.

    :param method: HTTP method used.
    :param url: Full request URL, without query parameters.
    :param status_code: HTTP status code received.
    :param headers: Response headers, as a read-only mapping.
    :param body: Raw response body text.
    :param resource: Parsed JSON body if it was a JSON object, else ``None``.
    :param request_body: JSON request body sent, if any.
    """

    method: str
    url: str
    status_code: int
    headers: Mapping[str, str] = field(default_factory=lambda: MappingProxyType({}))
    body: json_str = ""
    resource: FhirResource | None = None
    request_body: json_str | None = None

    @property
    def resource_type(self) -> str | None:
        if self.resource is None:
            return None
        return cast("str | None", self.resource.get("resourceType"))


class FhirClient:
    """
    Minimal FHIR client issuing read, search and operation requests.

    ``get_method`` and ``post_method`` default to :func:`requests.get` and
    :func:`requests.post`; tests replace them to route calls into a stub.
    """

    def __init__(
        self,
        base_url: str,
        bearer_token: str | None = None,
        headers: Mapping[str, str] | None = None,
        timeout: int = 10,
    ) -> None:
        """
        :param base_url: FHIR base URL of the server under test. Trailing slashes
            are stripped.
        :param bearer_token: Optional OAuth2 access token (without 'Bearer ' prefix)
        :param headers: Extra headers sent with every request.
        :param timeout: Timeout in seconds for HTTP calls.
        """
        self.base_url = base_url.rstrip("/")
        self.bearer_token = bearer_token
        self.headers = dict(headers or {})
        self.timeout = timeout
        self.get_method: RequestCallable = requests.get
        self.post_method: RequestCallable = requests.post

    def _build_headers(self, *, with_body: bool = False) -> dict[str, str]:
        headers = {"Accept": FHIR_JSON}
        if with_body:
            headers["Content-Type"] = FHIR_JSON
        if self.bearer_token:
            headers["Authorization"] = f"Bearer {self.bearer_token}"
        headers.update(self.headers)
        return headers

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _send(
        self,
        method: str,
        path: str,
        params: Mapping[str, str] | None = None,
        body: Mapping[str, Any] | None = None,
    ) -> FhirResponse:
        url = self._url(path)
        data = json.dumps(body) if body is not None else None
        headers = self._build_headers(with_body=data is not None)

        logger.debug("%s %s params=%s", method, url, dict(params or {}))
        try:
            if method == "GET":
                response = self.get_method(
                    url, headers=headers, params=params, timeout=self.timeout
                )
            else:
                response = self.post_method(
                    url,
                    headers=headers,
                    params=params,
                    data=data,
                    timeout=self.timeout,
                )
        except requests.RequestException as err:
            raise ExternalServiceError(
                f"{method} {url} could not be completed: {err}"
            ) from err

        logger.debug("%s %s -> %s", method, url, response.status_code)
        return FhirResponse(
            method=method,
            url=url,
            status_code=response.status_code,
            headers=MappingProxyType(dict(response.headers)),
            body=response.text,
            resource=_parse_resource(response.text),
            request_body=data,
        )

    def fhir_get_capability_statement(self) -> FhirResponse:
        return self._send("GET", "metadata")

    def fhir_read(self, resource_type: str, resource_id: str) -> FhirResponse:
        return self._send("GET", f"{resource_type}/{resource_id}")

    def fhir_search(
        self, resource_type: str, params: Mapping[str, str] | None = None
    ) -> FhirResponse:
        return self._send("GET", resource_type, params=params)

    def fhir_operation(
        self,
        path: str,
        body: Mapping[str, Any] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> FhirResponse:
        """
        POST to a FHIR operation endpoint such as ``Measure/123/$package``.

        :param path: Path relative to the base URL.
        :param body: Optional Parameters resource sent as the request body.
        :param params: Optional query parameters.
        :returns: The captured :class:`FhirResponse`.
        :raises ExternalServiceError: If the request could not be sent.
        """
        return self._send("POST", path, params=params, body=body)


def _parse_resource(body: str) -> FhirResource | None:
    if not body:
        return None
    try:
        parsed = json.loads(body)
    except json.JSONDecodeError:
        return None
    return cast("FhirResource", parsed) if isinstance(parsed, dict) else None
