"""
SFA CLI — pack images into a single file and get them back out.

Commands:
  sfa pack    - Create an SFA file from image files (stored as PNG)
  sfa unpack  - Extract every image of an SFA file into a directory
  sfa list    - Show the entries of an SFA file

Exit status: 0 on success, 2 on usage errors, 1 on other ValueErrors,
otherwise the exit_code of the error kind (see sfa.errors).
"""

from __future__ import annotations

import argparse
import io
import logging
import os
import sys
from pathlib import Path

from sfa import CANONICAL_FORMAT, ENV_LOG_LEVEL, __version__
from sfa.errors import InvalidNameError, SFAError, SFAIOError

log = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    """Configure root logging. Priority: -v > SFA_LOG_LEVEL > WARNING."""
    if verbose:
        level = logging.DEBUG
    else:
        name = os.environ.get(ENV_LOG_LEVEL, "WARNING").upper()
        level = logging.getLevelName(name)
        if not isinstance(level, int):
            level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%S",
    )


def _output_path(out_dir: Path, name: str) -> Path:
    """Resolve where an entry is extracted. Refuses names that escape out_dir."""
    if "/" in name or "\\" in name:
        raise InvalidNameError(name, "contains a path separator")
    if name in (".", "..") or Path(name).is_absolute():
        raise InvalidNameError(name, "not a plain filename")
    return out_dir / name


def cmd_pack(args: argparse.Namespace) -> None:
    """Create an SFA file. Entries are named by base filename, in argument order."""
    from sfa._format.writer import read_image_files, write_atomic

    entries = read_image_files(args.input_images)
    nbytes = write_atomic(args.outfile, entries)
    log.info("Packed %d images into %s", len(entries), args.outfile)
    print(f"Packed {len(entries)} image(s) -> {args.outfile} ({nbytes} bytes)")


def _render(name: str, image) -> bytes:
    """Encode an image in the format its name's extension asks for.

    Falls back to PNG when the extension is unknown or its format cannot
    hold the image's mode (RGBA as JPEG, for one).
    """
    from PIL import Image

    fmt = Image.registered_extensions().get(Path(name).suffix.lower())
    if fmt is not None and fmt != CANONICAL_FORMAT and fmt in Image.SAVE:
        buf = io.BytesIO()
        try:
            image.save(buf, format=fmt)
            return buf.getvalue()
        except (OSError, ValueError) as e:
            log.warning("Cannot save %r as %s (%s); writing PNG instead", name, fmt, e)

    buf = io.BytesIO()
    image.save(buf, format=CANONICAL_FORMAT)
    return buf.getvalue()


def cmd_unpack(args: argparse.Namespace) -> None:
    """Extract all images. The save format follows each name's extension."""
    from sfa._format.reader import decode

    images = decode(args.input_file)
    out_dir = Path(args.outdir)

    # Check every name and encode every image before touching the filesystem
    targets = [(_output_path(out_dir, name), _render(name, image)) for name, image in images.items()]

    try:
        out_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        raise SFAIOError(f"Cannot create output directory {str(out_dir)!r}: {e}") from e

    for dest, data in targets:
        try:
            dest.write_bytes(data)
        except OSError as e:
            raise SFAIOError(f"Cannot write {dest.name!r}: {e}") from e
        log.info("Extracted %s (%d bytes)", dest, len(data))
        print(f"  {dest}")

    print(f"Unpacked {len(targets)} image(s) -> {out_dir}")


def cmd_list(args: argparse.Namespace) -> None:
    """List entry names, stored sizes and dimensions."""
    from sfa._format.reader import SFAReader
    from sfa.normalizer import load_canonical

    try:
        f = open(args.input_file, "rb")
    except OSError as e:
        raise SFAIOError(f"Cannot open {args.input_file!r}: {e}") from e

    with f:
        reader = SFAReader(f)
        count = reader.read_header()
        rows = []
        for name, data in reader:
            image = load_canonical(data, name=name)
            rows.append((name, len(data), image.width, image.height, image.mode))

    print(f"{args.input_file}: {count} image(s), format v{reader.format_version}\n")
    for name, size, width, height, mode in rows:
        print(f"  {name}  {width}x{height} {mode}  {size} bytes")


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="sfa",
        description="Create SFA files or extract them",
    )
    parser.add_argument("--version", action="version", version=f"sfa {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="command")

    # pack
    p_pack = sub.add_parser("pack", help="Create an SFA archive")
    p_pack.add_argument(
        "-o", "--outfile", required=True, help="Output SFA file to save to",
    )
    p_pack.add_argument(
        "input_images", nargs="+",
        help="Input images. Any readable format; stored as PNG.",
    )

    # unpack
    p_unpack = sub.add_parser("unpack", help="Unpack an SFA file")
    p_unpack.add_argument("input_file", help="Input SFA file to process")
    p_unpack.add_argument(
        "-o", "--outdir", default=".", help="Output directory (default: current)",
    )

    # list
    p_list = sub.add_parser("list", help="List the images in an SFA file")
    p_list.add_argument("input_file", help="Input SFA file to inspect")

    args = parser.parse_args()

    if not args.command:
        print("SFA — Single File Assets")
        print()
        print("Usage:")
        print("  sfa pack -o sprite.sfa frame1.png frame2.png ...")
        print("  sfa unpack sprite.sfa -o frames/")
        print("  sfa list sprite.sfa")
        print()
        print("Run 'sfa <command> --help' for details on any command.")
        sys.exit(0)

    _setup_logging(args.verbose)

    commands = {
        "pack": cmd_pack,
        "unpack": cmd_unpack,
        "list": cmd_list,
    }

    try:
        commands[args.command](args)
    except SFAError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(e.exit_code)
    except ValueError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
