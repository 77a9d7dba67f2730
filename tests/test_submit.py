from __future__ import annotations

import base64
import io

from PIL import Image

from drawguess import submit
from drawguess.ai.types import ErrorKind, GuessResult, InferenceError


class _StubGuessClient:
    def __init__(self, result: GuessResult | None = None, error: InferenceError | None = None) -> None:
        self._result = result
        self._error = error
        self.images: list[str] = []

    def guess(self, image_base64: str) -> GuessResult:
        self.images.append(image_base64)
        if self._error is not None:
            raise self._error
        assert self._result is not None
        return self._result


def _decode(data_uri: str) -> Image.Image:
    prefix = "data:image/png;base64,"
    assert data_uri.startswith(prefix)
    return Image.open(io.BytesIO(base64.b64decode(data_uri[len(prefix):])))


def test_encode_drawing_flattens_transparency_onto_white(tmp_path) -> None:
    path = tmp_path / "sketch.png"
    image = Image.new("RGBA", (8, 8), (0, 0, 0, 0))
    image.putpixel((4, 4), (0, 0, 0, 255))
    image.save(path)

    exported = _decode(submit.encode_drawing(path))

    assert exported.format == "PNG"
    assert exported.mode == "RGB"
    assert exported.getpixel((0, 0)) == (255, 255, 255)
    assert exported.getpixel((4, 4)) == (0, 0, 0)


def test_encode_drawing_converts_jpeg_to_png(tmp_path) -> None:
    path = tmp_path / "sketch.jpg"
    Image.new("RGB", (4, 4), (200, 10, 10)).save(path, format="JPEG")

    exported = _decode(submit.encode_drawing(path))

    assert exported.format == "PNG"
    assert exported.size == (4, 4)


def test_main_prints_guess(tmp_path, monkeypatch, capsys) -> None:
    path = tmp_path / "sketch.png"
    Image.new("RGB", (4, 4), (255, 255, 255)).save(path)
    stub = _StubGuessClient(result=GuessResult(guess="cat", confidence="high", duration_ms=1500))
    monkeypatch.setattr(submit, "build_client", lambda args: stub)

    exit_code = submit.main([str(path)])

    assert exit_code == 0
    assert capsys.readouterr().out.strip() == "cat (high confidence, 1.5s)"
    assert stub.images[0].startswith("data:image/png;base64,")


def test_main_reports_typed_error(tmp_path, monkeypatch, capsys) -> None:
    path = tmp_path / "sketch.png"
    Image.new("RGB", (4, 4), (255, 255, 255)).save(path)
    stub = _StubGuessClient(error=InferenceError(ErrorKind.NETWORK_ERROR, "Failed to connect"))
    monkeypatch.setattr(submit, "build_client", lambda args: stub)

    exit_code = submit.main([str(path)])

    assert exit_code == 1
    assert "NETWORK_ERROR: Failed to connect" in capsys.readouterr().err


def test_main_missing_file(tmp_path, capsys) -> None:
    exit_code = submit.main([str(tmp_path / "absent.png")])

    assert exit_code == 2
    assert "Drawing not found" in capsys.readouterr().err


def test_build_client_selects_backend() -> None:
    args = submit.build_parser().parse_args(["x.png", "--api", "http", "--api-url", "http://api"])
    client = submit.build_client(args)

    assert client.__class__.__name__ == "DrawguessHttpClient"
    assert client.base_url == "http://api"
