import base64

import pytest

from gradethread.utils import media_type_for, read_image, to_data_uri


def test_bytes_become_data_uri() -> None:
    uri = to_data_uri(b"\x89PNG", "image/png")
    assert uri == "data:image/png;base64," + base64.b64encode(b"\x89PNG").decode("ascii")


def test_existing_data_uri_is_kept_and_bare_base64_defaults_to_jpeg() -> None:
    assert to_data_uri("data:image/webp;base64,UklGRg==") == "data:image/webp;base64,UklGRg=="
    assert to_data_uri("  /9j/4AAQ  ") == "data:image/jpeg;base64,/9j/4AAQ"


@pytest.mark.parametrize("name, media_type", [("a.JPG", "image/jpeg"), ("b.png", "image/png"), ("c.webp", "image/webp"), ("d.heic", "image/jpeg"), ("noext", "image/jpeg")])
def test_media_type_from_extension(name, media_type) -> None:
    assert media_type_for(name) == media_type


def test_read_image(tmp_path) -> None:
    path = tmp_path / "label.png"
    path.write_bytes(b"png-bytes")
    assert read_image(path).startswith("data:image/png;base64,")
    with pytest.raises(FileNotFoundError):
        read_image(tmp_path / "missing.jpg")
