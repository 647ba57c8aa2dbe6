"""
Tests for the sfa command line — pack, unpack, list, exit statuses.

Commands are driven through main() with a patched argv; no subprocesses.
"""

from __future__ import annotations

import io
import sys
from pathlib import Path
from unittest.mock import patch

import pytest
from PIL import Image

from sfa import encode_bytes, write_atomic
from sfa.cli import _output_path, main
from sfa.errors import (
    CorruptionError, DuplicateNameError, FormatError, ImageDecodeError,
    InvalidNameError, LimitError, SFAIOError,
)


def run(*argv: str) -> int:
    """Run the CLI, returning its exit status (0 when it returns normally)."""
    with patch.object(sys, "argv", ["sfa", *argv]):
        try:
            main()
        except SystemExit as e:
            return e.code or 0
    return 0


def write_image(path: Path, color, fmt: str = "PNG", size=(10, 10)) -> Path:
    Image.new("RGB", size, color).save(path, format=fmt)
    return path


# ---------------------------------------------------------------------------
# Fixtures
# ---------------------------------------------------------------------------

@pytest.fixture
def images(tmp_path):
    """A red PNG and a blue JPEG on disk."""
    src = tmp_path / "src"
    src.mkdir()
    return [
        write_image(src / "a.png", (255, 0, 0)),
        write_image(src / "b.jpg", (0, 0, 255), fmt="JPEG"),
    ]


@pytest.fixture
def packed(tmp_path, images):
    out = tmp_path / "sprite.sfa"
    assert run("pack", "-o", str(out), *map(str, images)) == 0
    return out


# ---------------------------------------------------------------------------
# TestPack
# ---------------------------------------------------------------------------

class TestPack:

    def test_pack_creates_container(self, capsys, packed):
        assert packed.is_file()
        assert packed.read_bytes()[:3] == b"SFA"
        assert "Packed 2 image(s)" in capsys.readouterr().out

    def test_pack_requires_outfile(self, images):
        assert run("pack", *map(str, images)) == 2  # argparse usage error

    def test_pack_duplicate_base_names(self, tmp_path, capsys):
        for d in ("x", "y"):
            (tmp_path / d).mkdir()
            write_image(tmp_path / d / "f.png", (0, 0, 0))
        out = tmp_path / "out.sfa"
        code = run("pack", "-o", str(out), str(tmp_path / "x" / "f.png"), str(tmp_path / "y" / "f.png"))
        assert code == DuplicateNameError.exit_code
        assert "f.png" in capsys.readouterr().err
        assert not out.exists()

    def test_pack_not_an_image(self, tmp_path, images, capsys):
        junk = tmp_path / "notes.txt"
        junk.write_text("hello")
        out = tmp_path / "out.sfa"
        code = run("pack", "-o", str(out), str(images[0]), str(junk))
        assert code == ImageDecodeError.exit_code
        assert "notes.txt" in capsys.readouterr().err
        assert not out.exists()

    def test_pack_image_over_limit(self, tmp_path, images, capsys, monkeypatch):
        from sfa._format import writer

        monkeypatch.setattr(writer, "MAX_ENTRY_SIZE", 10)
        out = tmp_path / "out.sfa"
        assert run("pack", "-o", str(out), *map(str, images)) == LimitError.exit_code
        assert "a.png" in capsys.readouterr().err
        assert not out.exists()

    def test_pack_missing_input(self, tmp_path, capsys):
        code = run("pack", "-o", str(tmp_path / "out.sfa"), str(tmp_path / "missing.png"))
        assert code == SFAIOError.exit_code
        assert capsys.readouterr().err.startswith("Error: ")


# ---------------------------------------------------------------------------
# TestUnpack
# ---------------------------------------------------------------------------

class TestUnpack:

    def test_unpack_round_trip(self, tmp_path, packed, images):
        out_dir = tmp_path / "out"
        assert run("unpack", str(packed), "-o", str(out_dir)) == 0
        assert sorted(p.name for p in out_dir.iterdir()) == ["a.png", "b.jpg"]

        with Image.open(out_dir / "a.png") as a:
            assert a.format == "PNG"
            assert a.convert("RGB").tobytes() == Image.open(images[0]).convert("RGB").tobytes()
        with Image.open(out_dir / "b.jpg") as b:
            assert b.format == "JPEG"
            assert b.size == (10, 10)

    def test_unknown_extension_saved_as_png(self, tmp_path):
        buf = io.BytesIO()
        Image.new("RGB", (2, 2), (1, 2, 3)).save(buf, format="PNG")
        container = tmp_path / "c.sfa"
        write_atomic(container, [("frame_01", buf.getvalue())])
        out_dir = tmp_path / "out"
        assert run("unpack", str(container), "-o", str(out_dir)) == 0
        with Image.open(out_dir / "frame_01") as image:
            assert image.format == "PNG"

    @pytest.mark.parametrize("mode, color", [
        ("RGBA", (10, 20, 30, 128)),
        ("LA", (77, 200)),
    ])
    def test_mode_jpeg_cannot_hold_saved_as_png(self, tmp_path, mode, color):
        buf = io.BytesIO()
        src = Image.new(mode, (3, 3), color)
        src.save(buf, format="PNG")
        container = tmp_path / "c.sfa"
        write_atomic(container, [("sprite.jpg", buf.getvalue())])

        out_dir = tmp_path / "out"
        assert run("unpack", str(container), "-o", str(out_dir)) == 0
        with Image.open(out_dir / "sprite.jpg") as image:
            assert image.format == "PNG"
            assert image.mode == mode
            assert image.tobytes() == src.tobytes()

    def test_unpack_bad_magic(self, tmp_path, capsys):
        bogus = tmp_path / "bogus.sfa"
        bogus.write_bytes(b"GIF89a......")
        assert run("unpack", str(bogus), "-o", str(tmp_path / "out")) == FormatError.exit_code
        assert "Bad magic" in capsys.readouterr().err

    def test_unpack_truncated(self, tmp_path, packed):
        data = packed.read_bytes()
        packed.write_bytes(data[:-10])
        out_dir = tmp_path / "out"
        assert run("unpack", str(packed), "-o", str(out_dir)) == CorruptionError.exit_code
        assert not out_dir.exists()

    def test_unpack_missing_file(self, tmp_path):
        assert run("unpack", str(tmp_path / "none.sfa")) == SFAIOError.exit_code

    def test_unpack_refuses_path_traversal(self, tmp_path, capsys):
        buf = io.BytesIO()
        Image.new("RGB", (2, 2)).save(buf, format="PNG")
        container = tmp_path / "evil.sfa"
        container.write_bytes(encode_bytes([("ok.png", buf.getvalue()), ("../evil.png", buf.getvalue())]))

        out_dir = tmp_path / "out"
        assert run("unpack", str(container), "-o", str(out_dir)) == InvalidNameError.exit_code
        assert "../evil.png" in capsys.readouterr().err
        assert not (tmp_path / "evil.png").exists()
        assert not out_dir.exists()


# ---------------------------------------------------------------------------
# TestOutputPath
# ---------------------------------------------------------------------------

class TestOutputPath:

    def test_plain_name(self, tmp_path):
        assert _output_path(tmp_path, "a.png") == tmp_path / "a.png"

    @pytest.mark.parametrize("name", ["../x.png", "sub/x.png", "a\\b.png", "..", ".", "/etc/passwd"])
    def test_unsafe_names(self, tmp_path, name):
        with pytest.raises(InvalidNameError):
            _output_path(tmp_path, name)


# ---------------------------------------------------------------------------
# TestList
# ---------------------------------------------------------------------------

class TestList:

    def test_list_entries(self, packed, capsys):
        assert run("list", str(packed)) == 0
        out = capsys.readouterr().out
        assert "2 image(s)" in out
        assert "a.png  10x10 RGB" in out
        assert "b.jpg  10x10 RGB" in out

    def test_list_corrupt(self, tmp_path, capsys):
        bad = tmp_path / "bad.sfa"
        bad.write_bytes(b"SFA\x01\x00\x00\x00\x05")
        assert run("list", str(bad)) == CorruptionError.exit_code
        assert "Stream ended" in capsys.readouterr().err


# ---------------------------------------------------------------------------
# TestMain
# ---------------------------------------------------------------------------

class TestMain:

    def test_no_command_prints_usage(self, capsys):
        assert run() == 0
        assert "sfa pack" in capsys.readouterr().out

    def test_version(self, capsys):
        assert run("--version") == 0
        assert capsys.readouterr().out.startswith("sfa ")

    def test_exit_codes_distinct(self):
        codes = {
            cls.exit_code for cls in (
                SFAIOError, FormatError, CorruptionError, ImageDecodeError,
                DuplicateNameError, InvalidNameError, LimitError,
            )
        }
        assert len(codes) == 7
        assert not codes & {0, 1, 2}
