from __future__ import annotations

import hashlib
import os
import shutil
import tempfile
from collections.abc import Iterable, Iterator
from contextlib import contextmanager
from pathlib import Path

from metasweep.errors import InputTooLargeError


def read_capped(path: Path, limit: int) -> bytes:
    """Read a whole file, refusing anything larger than ``limit`` bytes."""

    size = path.stat().st_size
    if size > limit:
        raise InputTooLargeError(size, limit)
    with path.open("rb") as handle:
        data = handle.read(limit + 1)
    if len(data) > limit:
        raise InputTooLargeError(len(data), limit)
    return data


@contextmanager
def staged_output(destination: Path) -> Iterator[Path]:
    """Yield a temporary sibling of ``destination``, renamed over it on success.

    The temporary file is removed when the block raises.
    """

    destination.parent.mkdir(parents=True, exist_ok=True)
    fd, temp_name = tempfile.mkstemp(
        prefix=f".{destination.name}.",
        suffix=".tmp",
        dir=destination.parent,
    )
    os.close(fd)
    temp_path = Path(temp_name)
    try:
        yield temp_path
        with temp_path.open("rb+") as handle:
            os.fsync(handle.fileno())
        mode = destination.stat().st_mode & 0o777 if destination.exists() else 0o644
        os.chmod(temp_path, mode)
        os.replace(temp_path, destination)
    finally:
        temp_path.unlink(missing_ok=True)


def atomic_write(destination: Path, data: bytes) -> Path:
    """Write ``data`` to ``destination`` through a staged temporary file."""

    with staged_output(destination) as temp_path:
        temp_path.write_bytes(data)
    return destination


def atomic_copy(source: Path, destination: Path) -> Path:
    """Copy ``source`` over ``destination`` through a staged temporary file."""

    if destination.exists() and source.resolve() == destination.resolve():
        return destination
    with staged_output(destination) as temp_path:
        shutil.copyfile(source, temp_path)
    return destination


def derive_output_path(
    path: Path,
    out_dir: Path | None = None,
    in_place: bool = False,
    suffix: str = ".cleaned",
) -> Path:
    """Return where the cleaned copy of ``path`` is written."""

    if in_place:
        return path
    directory = out_dir if out_dir is not None else path.parent
    return directory / f"{path.stem}{suffix}{path.suffix}"


def collect_targets(paths: Iterable[Path], recursive: bool = False) -> list[Path]:
    """Expand directories into the files they contain."""

    found: list[Path] = []
    seen: set[Path] = set()
    for path in paths:
        if path.is_dir():
            pattern = "**/*" if recursive else "*"
            candidates = sorted(item for item in path.glob(pattern) if item.is_file())
        else:
            candidates = [path]
        for candidate in candidates:
            key = candidate.resolve()
            if key in seen:
                continue
            seen.add(key)
            found.append(candidate)
    return found


def sha256_file(path: Path) -> str:
    """Compute the SHA-256 hash of a file in a streaming fashion."""

    digest = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(65536), b""):
            digest.update(chunk)
    return digest.hexdigest()


__all__ = [
    "atomic_copy",
    "atomic_write",
    "collect_targets",
    "derive_output_path",
    "read_capped",
    "sha256_file",
    "staged_output",
]
