from __future__ import annotations

import base64

import pytest

from markdown_viewer.background.config import BridgeConfig
from markdown_viewer.background.errors import ExternalCollaboratorFailure
from markdown_viewer.background.file_reader import read_local_file


@pytest.fixture
def config() -> BridgeConfig:
    return BridgeConfig(http_max_bytes=2048)


def test_reads_text_from_file_url_and_plain_path(tmp_path, config: BridgeConfig) -> None:
    doc = tmp_path / "notes.md"
    doc.write_text("# Héllo\n", encoding="utf-8")

    assert read_local_file(doc.as_uri(), config) == {"content": "# Héllo\n"}
    assert read_local_file(str(doc), config) == {"content": "# Héllo\n"}


def test_binary_mode_returns_base64_and_content_type(tmp_path, config: BridgeConfig) -> None:
    img = tmp_path / "pixel.png"
    raw = b"\x89PNG\r\n\x1a\n\x00\x01"
    img.write_bytes(raw)

    res = read_local_file(img.as_uri(), config, binary=True)
    assert base64.b64decode(res["content"]) == raw
    assert res["contentType"] == "image/png"


def test_missing_file(tmp_path, config: BridgeConfig) -> None:
    with pytest.raises(ExternalCollaboratorFailure, match="404"):
        read_local_file((tmp_path / "nope.md").as_uri(), config)


def test_directory_is_not_a_file(tmp_path, config: BridgeConfig) -> None:
    with pytest.raises(ExternalCollaboratorFailure):
        read_local_file(str(tmp_path), config)


def test_size_limit(tmp_path, config: BridgeConfig) -> None:
    big = tmp_path / "big.md"
    big.write_text("x" * 4096, encoding="utf-8")
    with pytest.raises(ExternalCollaboratorFailure, match="larger than 2048 bytes"):
        read_local_file(str(big), config)


@pytest.mark.parametrize("path", ["ftp://example.com/readme.md", "data:text/plain,hi"])
def test_unsupported_schemes(path: str, config: BridgeConfig) -> None:
    with pytest.raises(ExternalCollaboratorFailure, match="Unsupported scheme"):
        read_local_file(path, config)


def test_blank_path(config: BridgeConfig) -> None:
    with pytest.raises(ExternalCollaboratorFailure, match="Missing file path"):
        read_local_file("   ", config)
