"""Runs the whole suite against the in-memory stub."""

import json
from collections.abc import Callable
from typing import TypeAlias

import pytest

from measure_repository_test_kit.runner import (
    CheckOptions,
    Outcome,
    TestRunner,
    run_passed,
)
from measure_repository_test_kit.suite import SUITE_ID, build_suite
from measure_repository_test_kit.utils.general_utils import IdentifierMatch
from measure_repository_test_kit.utils.package_utils import ReferenceDetection

RunnerFactory: TypeAlias = Callable[..., TestRunner]

EXPECTED = json.dumps(
    [
        "Condition.code(http://example.com/ValueSet/diabetes-codes)",
        "Encounter.type(http://snomed.info/sct|185463005)",
    ]
)


def test_suite_layout() -> None:
    suite = build_suite()

    assert suite.id == SUITE_ID
    assert [g.id for g in suite.groups] == [
        "capability_statement",
        "measure_group",
        "library_group",
        "measure_package",
        "library_package",
        "measure_include_terminology",
        "library_include_terminology",
        "measure_data_requirements",
        "library_data_requirements",
    ]
    test_ids = [t.id for g in suite.groups for t in g.tests]
    assert len(test_ids) == len(set(test_ids))


def test_suite_inputs() -> None:
    names = {i.name for i in build_suite().all_inputs}

    assert {
        "url",
        "bearer_token",
        "measure_id",
        "measure_url",
        "measure_identifier",
        "measure_version",
        "library_id",
        "library_url",
        "library_identifier",
        "library_version",
        "measure_expected_data_requirements",
        "library_expected_data_requirements",
    } == names


@pytest.mark.parametrize(
    "options",
    [
        CheckOptions(),
        CheckOptions(IdentifierMatch.STRICT, ReferenceDetection.STRUCTURED),
    ],
)
def test_every_test_passes_against_conformant_server(
    make_runner: RunnerFactory, options: CheckOptions
) -> None:
    runner = make_runner(
        options=options,
        measure_expected_data_requirements=EXPECTED,
        library_expected_data_requirements=EXPECTED,
    )

    results = runner.run(build_suite())

    failures = [(r.test_id, r.message) for r in results if r.result != Outcome.PASS]
    assert failures == []
    assert run_passed(results)


def test_run_without_inputs_only_runs_unparameterised_tests(
    make_runner: RunnerFactory, server_inputs: dict[str, str]
) -> None:
    cleared = {name: None for name in server_inputs if name != "url"}

    results = make_runner(**cleared).run(build_suite())

    passed = {r.test_id for r in results if r.result == Outcome.PASS}
    assert "capability_statement_read" in passed
    assert "measure-package-06" in passed
    assert "library-data-requirements-05" in passed
    assert all(r.result in (Outcome.PASS, Outcome.SKIP) for r in results)
    assert run_passed(results)


def test_failures_are_collected_without_stopping(
    stub, make_runner: RunnerFactory
) -> None:
    stub.omit_from_package.add(stub.HELPER_LIBRARY_URL)

    results = make_runner().run(build_suite())

    failed = {r.test_id for r in results if r.result == Outcome.FAIL}
    assert {"measure-package-05", "library-package-05"} <= failed
    assert len(results) == len([t for g in build_suite().groups for t in g.tests])
    assert not run_passed(results)
