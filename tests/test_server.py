import unittest

from fastapi.testclient import TestClient

from drawguess.ai.types import ErrorKind, GuessClient, GuessResult, InferenceError
from drawguess.api.server import ERROR_STATUS_CODES, create_app


class _StubGuessClient(GuessClient):
    def __init__(self, result: GuessResult | None = None, error: Exception | None = None) -> None:
        self._result = result or GuessResult(guess="cat", confidence="high", duration_ms=850)
        self._error = error
        self.images: list[str] = []

    def guess(self, image_base64: str) -> GuessResult:
        self.images.append(image_base64)
        if self._error is not None:
            raise self._error
        return self._result


class GuessRouteTests(unittest.TestCase):
    def test_successful_guess(self) -> None:
        stub = _StubGuessClient()
        app = create_app(guess_client=stub)

        with TestClient(app) as client:
            response = client.post("/api/guess", json={"image": "data:image/png;base64,QUJD"})

        self.assertEqual(response.status_code, 200)
        self.assertEqual(
            response.json(), {"guess": "cat", "confidence": "high", "duration_ms": 850}
        )
        self.assertEqual(stub.images, ["data:image/png;base64,QUJD"])

    def test_inference_errors_map_to_status_codes(self) -> None:
        expected = {
            ErrorKind.MODEL_NOT_FOUND: 503,
            ErrorKind.OLLAMA_SERVER_ERROR: 503,
            ErrorKind.OLLAMA_API_ERROR: 500,
            ErrorKind.TIMEOUT: 504,
            ErrorKind.NETWORK_ERROR: 503,
            ErrorKind.EMPTY_GUESS: 500,
            ErrorKind.UNKNOWN_ERROR: 500,
        }
        for kind, status in expected.items():
            with self.subTest(kind=kind):
                stub = _StubGuessClient(error=InferenceError(kind, f"{kind.value} happened"))
                with TestClient(create_app(guess_client=stub)) as client:
                    response = client.post("/api/guess", json={"image": "QUJD"})
                self.assertEqual(response.status_code, status)
                self.assertEqual(
                    response.json(), {"error": f"{kind.value} happened", "code": kind.value}
                )

    def test_every_error_kind_has_a_status(self) -> None:
        self.assertEqual(set(ERROR_STATUS_CODES), set(ErrorKind))

    def test_unexpected_exception_is_internal_error(self) -> None:
        stub = _StubGuessClient(error=RuntimeError("kaboom"))
        with TestClient(create_app(guess_client=stub)) as client:
            with self.assertLogs("drawguess.api.server", level="ERROR"):
                response = client.post("/api/guess", json={"image": "QUJD"})
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Internal server error"})

    def test_rejects_invalid_bodies(self) -> None:
        stub = _StubGuessClient()
        with TestClient(create_app(guess_client=stub)) as client:
            not_json = client.post(
                "/api/guess",
                content="{not json",
                headers={"Content-Type": "application/json"},
            )
            missing = client.post("/api/guess", json={})
            wrong_type = client.post("/api/guess", json={"image": 123})
            empty = client.post("/api/guess", json={"image": ""})
            blank = client.post("/api/guess", json={"image": "   "})

        self.assertEqual(not_json.status_code, 400)
        self.assertEqual(not_json.json(), {"error": "Invalid JSON in request body"})
        for response in (missing, wrong_type, empty):
            self.assertEqual(response.status_code, 400)
            self.assertEqual(
                response.json()["error"],
                "Missing or invalid 'image' field. Expected base64 string.",
            )
        self.assertEqual(blank.status_code, 400)
        self.assertEqual(blank.json(), {"error": "Image field cannot be empty"})
        self.assertEqual(stub.images, [])

    def test_healthcheck(self) -> None:
        with TestClient(create_app(guess_client=_StubGuessClient())) as client:
            response = client.get("/health")
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json(), {"status": "ok"})


if __name__ == "__main__":
    unittest.main()
