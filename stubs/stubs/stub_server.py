"""
Flask wrapper serving :class:`MeasureRepositoryStub` over real HTTP.

Used by the acceptance tests, which exercise the test kit's ``requests``
client end to end rather than through a patched ``get``/``post``.
"""

from flask import Flask, Response, request

from stubs.stub_measure_repository import MeasureRepositoryStub

FHIR_BASE = "/fhir"


def create_app(stub: MeasureRepositoryStub | None = None) -> Flask:
    app = Flask(__name__)
    repository = stub or MeasureRepositoryStub()

    @app.route(f"{FHIR_BASE}/<path:path>", methods=["GET", "POST"])
    def fhir(path: str) -> Response:
        url = f"{FHIR_BASE}/{path}"
        if request.method == "GET":
            stub_response = repository.get(url, params=request.args.to_dict())
        else:
            stub_response = repository.post(
                url,
                params=request.args.to_dict(),
                data=request.get_data(as_text=True) or None,
            )
        return Response(
            response=stub_response.content,
            status=stub_response.status_code,
            mimetype="application/fhir+json",
        )

    @app.route("/health", methods=["GET"])
    def health_check() -> dict[str, str]:
        return {"status": "healthy"}

    return app
