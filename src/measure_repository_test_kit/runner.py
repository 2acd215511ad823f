"""
Test-case records and the runner that executes them.

A :class:`TestSuite` holds :class:`TestGroup` objects, which hold
:class:`TestCase` records. Each test case declares the inputs it needs and a
``run`` function that receives a fresh :class:`TestContext`. The runner turns
each run into a :class:`Result`:

* ``pass``  - ``run`` returned normally
* ``fail``  - an :class:`~measure_repository_test_kit.assertions.AssertionFailure`
  was raised
* ``skip``  - a required input, or a request named by ``uses_request``, was missing
* ``error`` - the server could not be reached or the test itself raised

A failing test never stops the run.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from enum import StrEnum

from measure_repository_test_kit.assertions import AssertionFailure
from measure_repository_test_kit.fhir_client import (
    ExternalServiceError,
    FhirClient,
    FhirResponse,
)
from measure_repository_test_kit.utils.general_utils import IdentifierMatch
from measure_repository_test_kit.utils.package_utils import ReferenceDetection

logger = logging.getLogger(__name__)

ClientFactory = Callable[[Mapping[str, str]], FhirClient]


class Outcome(StrEnum):
    PASS = "pass"
    FAIL = "fail"
    SKIP = "skip"
    ERROR = "error"


@dataclass(frozen=True)
class CheckOptions:
    """
    Matching behaviour used by the bundle checks of a single run.

    :param identifier_match: How identifier tokens are matched.
    :param reference_detection: How Library/ValueSet dependencies are recognised.
    """

    identifier_match: IdentifierMatch = IdentifierMatch.LOOSE
    reference_detection: ReferenceDetection = ReferenceDetection.SUBSTRING


@dataclass(frozen=True)
class Input:
    name: str
    title: str
    optional: bool = False
    default: str | None = None


@dataclass(frozen=True)
class TestCase:
    """
    A single conformance test.

    :param id: Stable test id, e.g. ``measure-package-01``.
    :param title: Short title shown in results.
    :param description: Longer description of what is verified.
    :param run: Test body; raises ``AssertionFailure`` to fail.
    :param inputs: Inputs the test reads from its context.
    :param optional: Failures of optional tests do not fail the run.
    :param makes_request: Name under which this test stores its first response.
    :param uses_request: Name of a stored response this test needs.
    """

    __test__ = False

    id: str
    title: str
    description: str
    run: Callable[[TestContext], None]
    inputs: tuple[Input, ...] = ()
    optional: bool = False
    makes_request: str | None = None
    uses_request: str | None = None


@dataclass(frozen=True)
class TestGroup:
    __test__ = False

    id: str
    title: str
    description: str
    tests: tuple[TestCase, ...]
    headers: Mapping[str, str] = field(default_factory=dict)

    @property
    def inputs(self) -> list[Input]:
        return _unique_inputs(test.inputs for test in self.tests)


@dataclass(frozen=True)
class TestSuite:
    __test__ = False

    id: str
    title: str
    description: str
    groups: tuple[TestGroup, ...]
    inputs: tuple[Input, ...] = ()

    def find_group(self, group_id: str) -> TestGroup | None:
        return next((g for g in self.groups if g.id == group_id), None)

    def find_test(self, test_id: str) -> tuple[TestGroup, TestCase] | None:
        for group in self.groups:
            for test in group.tests:
                if test.id == test_id:
                    return group, test
        return None

    @property
    def all_inputs(self) -> list[Input]:
        return _unique_inputs([self.inputs, *(tuple(g.inputs) for g in self.groups)])


@dataclass(frozen=True)
class Result:
    group_id: str
    test_id: str
    title: str
    result: Outcome
    message: str = ""
    optional: bool = False


def _unique_inputs(input_lists: Iterable[Iterable[Input]]) -> list[Input]:
    seen: dict[str, Input] = {}
    for inputs in input_lists:
        for item in inputs:
            seen.setdefault(item.name, item)
    return list(seen.values())


class MissingRequestError(Exception):
    """Raised when a test uses a named request that no earlier test made."""


class TestContext:
    """
    Per-test view of the run: inputs, the FHIR client and stored requests.

    Every request made through the context becomes :attr:`response`. The
    first request of a test with ``makes_request`` is stored under that name,
    replacing whatever an earlier run of the same test stored.
    """

    __test__ = False

    def __init__(
        self,
        client: FhirClient,
        inputs: Mapping[str, str | None],
        options: CheckOptions,
        requests: dict[str, FhirResponse],
        makes_request: str | None = None,
    ) -> None:
        self.client = client
        self.inputs = inputs
        self.options = options
        self._requests = requests
        self._makes_request = makes_request
        self._stored = False
        self.response: FhirResponse | None = None

    def input(self, name: str) -> str | None:
        return self.inputs.get(name)

    @property
    def last_response(self) -> FhirResponse:
        if self.response is None:
            raise AssertionFailure("No request has been made by this test")
        return self.response

    def request(self, name: str) -> FhirResponse:
        try:
            return self._requests[name]
        except KeyError:
            raise MissingRequestError(
                f"No request named '{name}' has been made in this run"
            ) from None

    def _record(self, response: FhirResponse) -> FhirResponse:
        self.response = response
        if self._makes_request and not self._stored:
            self._requests[self._makes_request] = response
            self._stored = True
        return response

    def fhir_get_capability_statement(self) -> FhirResponse:
        return self._record(self.client.fhir_get_capability_statement())

    def fhir_read(self, resource_type: str, resource_id: str) -> FhirResponse:
        return self._record(self.client.fhir_read(resource_type, resource_id))

    def fhir_search(
        self, resource_type: str, params: Mapping[str, str] | None = None
    ) -> FhirResponse:
        return self._record(self.client.fhir_search(resource_type, params))

    def fhir_operation(
        self,
        path: str,
        body: Mapping[str, object] | None = None,
        params: Mapping[str, str] | None = None,
    ) -> FhirResponse:
        return self._record(self.client.fhir_operation(path, body, params))


def default_client_factory(
    inputs: Mapping[str, str | None], timeout: int = 10
) -> ClientFactory:
    """Build the client factory used when none is supplied to the runner."""

    def factory(headers: Mapping[str, str]) -> FhirClient:
        return FhirClient(
            base_url=inputs.get("url") or "",
            bearer_token=inputs.get("bearer_token"),
            headers=headers,
            timeout=timeout,
        )

    return factory


class TestRunner:
    """
    Executes suites, groups or single tests against one server.

    A runner holds the named-request store for its runs; create a new runner
    for each independent session.
    """

    __test__ = False

    def __init__(
        self,
        inputs: Mapping[str, str | None],
        options: CheckOptions | None = None,
        client_factory: ClientFactory | None = None,
        timeout: int = 10,
    ) -> None:
        self.inputs = {k: v for k, v in inputs.items() if v not in (None, "")}
        self.options = options or CheckOptions()
        self.client_factory = client_factory or default_client_factory(
            self.inputs, timeout
        )
        self.requests: dict[str, FhirResponse] = {}

    def run(self, runnable: TestSuite | TestGroup | TestCase) -> list[Result]:
        if isinstance(runnable, TestSuite):
            logger.info("Running suite %s", runnable.id)
            return [r for group in runnable.groups for r in self.run_group(group)]
        if isinstance(runnable, TestGroup):
            return self.run_group(runnable)
        return [self.run_test(runnable)]

    def run_group(self, group: TestGroup) -> list[Result]:
        logger.info("Running group %s", group.id)
        client = self.client_factory(group.headers)
        return [self.run_test(test, group, client) for test in group.tests]

    def run_test(
        self,
        test: TestCase,
        group: TestGroup | None = None,
        client: FhirClient | None = None,
    ) -> Result:
        group_id = group.id if group else ""
        if client is None:
            client = self.client_factory(group.headers if group else {})

        def result(outcome: Outcome, message: str = "") -> Result:
            logger.info("%s %s: %s %s", test.id, test.title, outcome, message)
            return Result(
                group_id=group_id,
                test_id=test.id,
                title=test.title,
                result=outcome,
                message=message,
                optional=test.optional,
            )

        missing = [
            i.name
            for i in test.inputs
            if not i.optional and i.default is None and i.name not in self.inputs
        ]
        if missing:
            return result(Outcome.SKIP, f"Missing input(s): {', '.join(missing)}")

        if test.uses_request and test.uses_request not in self.requests:
            return result(
                Outcome.SKIP,
                f"Request '{test.uses_request}' has not been made in this run",
            )

        inputs = {i.name: i.default for i in test.inputs} | self.inputs
        context = TestContext(
            client, inputs, self.options, self.requests, test.makes_request
        )
        if test.uses_request:
            context.response = self.requests[test.uses_request]

        try:
            test.run(context)
        except AssertionFailure as err:
            return result(Outcome.FAIL, str(err))
        except ExternalServiceError as err:
            return result(Outcome.ERROR, str(err))
        except Exception as err:  # noqa: BLE001 - one broken test must not stop the run
            logger.exception("Test %s raised unexpectedly", test.id)
            return result(Outcome.ERROR, f"{type(err).__name__}: {err}")

        return result(Outcome.PASS)


def run_passed(results: Iterable[Result]) -> bool:
    """``True`` if no required test failed or errored."""
    return all(
        r.optional or r.result in (Outcome.PASS, Outcome.SKIP) for r in results
    )
