"""
Compress or decompress a single file with the Huffman codec.

How to run:
  python -m huff compress notes.txt            # writes notes.txt.hf
  python -m huff decompress notes.txt.hf       # writes notes.txt
  python -m huff decompress blob -o blob.out -vv

HUFF_LOG_LEVEL (ERROR, WARNING, INFO, DEBUG, TRACE) sets the base log level;
each -v raises it one step.
"""

import argparse
import os
import sys
from pathlib import Path
from typing import List, Optional

from loguru import logger

import huffman

SUFFIX = ".hf"
UNCOMPRESSED_SUFFIX = ".unhf"
LOG_LEVELS = ["ERROR", "WARNING", "INFO", "DEBUG", "TRACE"]
DEFAULT_LOG_LEVEL = "WARNING"


def configure_logging(verbosity: int) -> str:
    base = os.getenv("HUFF_LOG_LEVEL", DEFAULT_LOG_LEVEL).upper()
    if base not in LOG_LEVELS:
        base = DEFAULT_LOG_LEVEL
    level = LOG_LEVELS[min(LOG_LEVELS.index(base) + verbosity, len(LOG_LEVELS) - 1)]
    logger.remove()
    logger.add(sys.stderr, level=level, format="<level>{level: <8}</level> | {message}")
    return level


def default_output(src: Path, command: str) -> Path:
    if command == "compress":
        return src.with_name(src.name + SUFFIX)
    if src.suffix == SUFFIX:
        return src.with_suffix("")
    return src.with_name(src.name + UNCOMPRESSED_SUFFIX)


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("src", type=str, help="Input file")
    common.add_argument("-o", "--output", type=str, default=None, help="Output file (default derived from SRC)")
    common.add_argument("-v", "--verbose", action="count", default=0, help="More logging (repeatable)")

    ap = argparse.ArgumentParser(prog="huff", description="Huffman file compressor")
    sub = ap.add_subparsers(dest="command", required=True)
    sub.add_parser("compress", parents=[common], help=f"Compress SRC (default output SRC{SUFFIX})")
    sub.add_parser("decompress", parents=[common], help=f"Decompress SRC (strips {SUFFIX})")
    return ap


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.verbose)

    src = Path(args.src)
    dst = Path(args.output) if args.output else default_output(src, args.command)
    if dst.exists() and src.exists() and dst.resolve() == src.resolve():
        logger.error("refusing to overwrite input {}", src)
        return 1

    run = huffman.compress if args.command == "compress" else huffman.decompress
    try:
        with src.open("rb") as fi, dst.open("wb") as fo:
            stats = run(fi, fo)
    except huffman.HuffException as e:
        logger.error("{}: {}", src, e)
        dst.unlink(missing_ok=True)  # drop partial output
        return 1
    except OSError as e:
        logger.error("{}", e)
        return 1

    print(f"{src} -> {dst}: {stats.bytes_in} -> {stats.bytes_out} bytes (ratio {stats.ratio:.3f})")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
