"""Read a sequence of frame files one by one and write them to an output directory."""

from __future__ import annotations

import getopt
import re
import sys

from .filelist import generate_filename, get_filelist, is_dir, sort_filelist, split_filename

_PROGRESS_STEP = 20
_OUTPUT_SUFFIX = ".r.bmp"
_LEADING_INT = re.compile(r"\s*([+-]?\d+)")

_USAGE = """Usage:
       {name} -i <file> -o <file> [options ...]

Required:
       -i | --input <file>            - input file or directory
       -o | --output <file>           - output file or directory

Options:
       -s | --start                   - start frame
       -f | --finish                  - end frame
       -h | --help                    - show help

"""


def read_image(src: str) -> bytes:
    """Return the raw contents of an image file."""
    with open(src, "rb") as handle:
        return handle.read()


def write_image(image: bytes, dst: str) -> None:
    """Write raw image data to ``dst``."""
    with open(dst, "wb") as handle:
        handle.write(image)


def format_progress(value: int, total: int, threads: int = 1) -> str:
    """Render a 20-step progress bar line for ``value`` of ``total``."""
    filled = _PROGRESS_STEP / total * value
    bar = "".join("=" if filled > i else " " for i in range(_PROGRESS_STEP))
    plural = "s" if threads > 1 else ""
    return f"Conversion use {threads} thread{plural}[{bar}] 100% [{value}/{total}]"


def frame_range(count: int, start: int = -1, finish: int = -1) -> range:
    """Resolve start/finish frame numbers (-1 meaning undefined) against ``count``."""
    if start == -1:
        print("Start frame is not defined, set it to 0")
        start = 0
    if finish > count:
        print("Finish frame is greater than the actual frame count, set it to last")
        finish = count
    elif finish == -1:
        print("Finish frame is not defined, set it to last")
        finish = count
    if start > finish:
        raise ValueError("Finish frame num should be more then start frame num")
    return range(start, finish)


def _to_int(text: str) -> int:
    match = _LEADING_INT.match(text)
    return int(match.group(1)) if match else 0


def _usage(name: str) -> int:
    sys.stdout.write(_USAGE.format(name=name))
    return 1


def main(argv: list[str] | None = None) -> int:
    """Command-line entry point."""
    if argv is None:
        argv = sys.argv[1:]
    name = "filereader"
    if not argv:
        return _usage(name)

    try:
        options, _ = getopt.gnu_getopt(
            argv, "i:o:s:f:h", ["help", "input=", "output=", "start=", "finish="]
        )
    except getopt.GetoptError as exc:
        print(exc, file=sys.stderr)
        return _usage(name)

    in_path = out_path = None
    start_frame = finish_frame = -1
    for option, value in options:
        if option in ("-h", "--help"):
            return _usage(name)
        if option in ("-i", "--input"):
            in_path = value
        elif option in ("-o", "--output"):
            out_path = value
        elif option in ("-s", "--start"):
            start_frame = _to_int(value)
            if start_frame < 0:
                print("Start frame num should be more then 0", file=sys.stderr)
                return 1
            print(f"start_frame = {start_frame}")
        elif option in ("-f", "--finish"):
            finish_frame = _to_int(value)
            if finish_frame < 0:
                print("Finish frame num should be more then 0", file=sys.stderr)
                return 1
            print(f"end_frame = {finish_frame}")

    if not in_path:
        print("Missing input file path", file=sys.stderr)
        return 1
    if in_path.endswith("/") and len(in_path) > 1:
        in_path = in_path[:-1]
    if not out_path:
        print("Missing output file path", file=sys.stderr)
        return 1
    if out_path.endswith("/") and len(out_path) > 1:
        out_path = out_path[:-1]

    if not is_dir(in_path):
        print(f"Input is not a directory, use path {in_path}")
    if not is_dir(out_path):
        print(f"Output is not a directory, use path {out_path}", file=sys.stderr)

    print(f"Searching path {in_path}")
    try:
        files = get_filelist(in_path)
    except FileNotFoundError as exc:
        print(exc)
        print("No input files located")
        return 1
    print(f"Total: {len(files)} files")
    print("Sorting filelist... ", end="")
    files = sort_filelist(files)
    print("done")
    if not files:
        print("No input files located")

    try:
        frames = frame_range(len(files), start_frame, finish_frame)
    except ValueError as exc:
        print(exc, file=sys.stderr)
        return 1

    print("Read files one by one and work with it")
    for index in frames:
        source = files[index]
        try:
            image = read_image(source)
        except OSError:
            print(f"Read {source} failed", file=sys.stderr)
            continue
        _, base, _ = split_filename(source)
        destination = generate_filename(out_path, base, _OUTPUT_SUFFIX)
        try:
            write_image(image, destination)
        except OSError:
            print("convert failed", file=sys.stderr)
            continue
    return 0


if __name__ == "__main__":
    sys.exit(main())