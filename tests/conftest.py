"""Pytest configuration and shared fixtures for the test kit's own tests."""

import socket
import threading
import time
from collections.abc import Callable, Mapping
from typing import TypeAlias

import pytest
import requests
from stubs.stub_measure_repository import MeasureRepositoryStub
from stubs.stub_server import FHIR_BASE, create_app

from measure_repository_test_kit.fhir_client import FhirClient
from measure_repository_test_kit.runner import CheckOptions, TestRunner

RunnerFactory: TypeAlias = Callable[..., TestRunner]


@pytest.fixture
def stub() -> MeasureRepositoryStub:
    return MeasureRepositoryStub()


@pytest.fixture
def server_inputs() -> dict[str, str]:
    """Inputs describing the artifacts seeded into the stub."""
    return {
        "url": "http://measure-repository.test/fhir",
        "measure_id": MeasureRepositoryStub.MEASURE_ID,
        "measure_url": MeasureRepositoryStub.MEASURE_URL,
        "measure_identifier": MeasureRepositoryStub.MEASURE_IDENTIFIER,
        "measure_version": MeasureRepositoryStub.VERSION,
        "library_id": MeasureRepositoryStub.LIBRARY_ID,
        "library_url": MeasureRepositoryStub.LIBRARY_URL,
        "library_identifier": MeasureRepositoryStub.LIBRARY_IDENTIFIER,
        "library_version": MeasureRepositoryStub.VERSION,
    }


@pytest.fixture
def make_runner(
    stub: MeasureRepositoryStub, server_inputs: dict[str, str]
) -> RunnerFactory:
    """
    Build runners whose clients call the stub directly instead of the network.

    Keyword arguments override entries of ``server_inputs``; ``options`` sets
    the runner's :class:`CheckOptions`.
    """

    def factory(
        options: CheckOptions | None = None, **inputs: str | None
    ) -> TestRunner:
        def client_factory(headers: Mapping[str, str]) -> FhirClient:
            client = FhirClient(server_inputs["url"], headers=headers)
            client.get_method = stub.get
            client.post_method = stub.post
            return client

        return TestRunner(
            server_inputs | inputs, options=options, client_factory=client_factory
        )

    return factory


@pytest.fixture(scope="module")
def provider_url() -> str:
    """Serve a fresh stub over HTTP in a separate thread and return its FHIR base.

    Used by the acceptance tests, which drive the real ``requests`` client.
    """
    app = create_app()

    # Use port 0 to let the OS assign a free port
    sock = socket.socket()
    sock.bind(("", 0))
    port = sock.getsockname()[1]
    sock.close()

    def run_app() -> None:
        app.run(port=port, debug=False, use_reloader=False)

    # Daemon threads terminate when the test process exits
    thread = threading.Thread(target=run_app, daemon=True)
    thread.start()

    url = f"http://localhost:{port}"
    max_retries = 10
    retry_delay = 0.1

    for _ in range(max_retries):
        try:
            response = requests.get(f"{url}/health", timeout=1)
            if response.status_code == 200:
                break
        except requests.exceptions.RequestException:
            time.sleep(retry_delay)
    else:
        raise RuntimeError(f"Stub server failed to start on {url}")

    return f"{url}{FHIR_BASE}"
