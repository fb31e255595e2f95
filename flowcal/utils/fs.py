"""File output helpers: atomic writes, YAML input, zip bundles, slugs.

Generated programs are written tmp-file-then-rename so a slicer or printer
watching the output directory never picks up a half-written plate.

Usage:
    from flowcal.utils import fs
    fs.atomic_write_text(out_dir / plate.filename(model), plate.program)
    fs.bundle_archive([(name, data), ...], out_dir / "flow-test-A1.zip")
"""

import io
import os
import re
import zipfile
from pathlib import Path
from typing import Any, Iterable, Tuple, Union

import yaml

PathLike = Union[str, Path]


def ensure_dir(p: PathLike) -> Path:
    """Create *p* (and parents) if missing; return it as a Path."""
    p = Path(p)
    p.mkdir(parents=True, exist_ok=True)
    return p


def atomic_write_bytes(path: PathLike, data: bytes) -> None:
    """Write *data* to *path* via a sibling tmp file, fsync and rename.

    Raises
    ------
    RuntimeError
        If writing or renaming fails; the tmp file is removed.
    """
    path = Path(path)
    ensure_dir(path.parent)
    tmp_path = path.with_name(path.name + ".tmp")

    try:
        with open(tmp_path, 'wb') as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
        tmp_path.replace(path)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise RuntimeError(f"Failed to write {path} atomically: {e}") from e


def atomic_write_text(path: PathLike, text: str, encoding: str = "utf-8") -> None:
    """Text variant of :func:`atomic_write_bytes`."""
    atomic_write_bytes(path, text.encode(encoding))


def load_yaml(path: PathLike) -> Any:
    """Parse a YAML file with ``yaml.safe_load``.

    Returns whatever the document holds (``None`` for an empty file).

    Raises
    ------
    FileNotFoundError
        If *path* does not exist.
    yaml.YAMLError
        If the document does not parse.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"YAML file not found: {path}")

    with open(path, 'r', encoding='utf-8') as f:
        try:
            return yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Failed to parse YAML file {path}: {e}") from e


def archive_bytes(entries: Iterable[Tuple[str, bytes]]) -> bytes:
    """Pack ``(name, data)`` pairs into an in-memory zip, in order."""
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, 'w', compression=zipfile.ZIP_DEFLATED) as zf:
        for name, data in entries:
            zf.writestr(name, data)
    return buf.getvalue()


def bundle_archive(entries: Iterable[Tuple[str, bytes]], path: PathLike) -> Path:
    """Write ``(name, data)`` pairs to a zip file at *path* atomically.

    Parameters
    ----------
    entries : Iterable[Tuple[str, bytes]]
        Member names and raw contents.
    path : str | Path
        Target ``.zip`` file.

    Returns
    -------
    Path
        The written archive.
    """
    path = Path(path)
    atomic_write_bytes(path, archive_bytes(entries))
    return path


def slugify(name: str, fallback: str = "printer") -> str:
    """Reduce *name* to ``[A-Za-z0-9_-]`` for use in file names.

    Runs of other characters collapse to one ``-``; leading and trailing
    dashes are stripped.  An empty result yields *fallback*.
    """
    slug = re.sub(r"[^a-z0-9_-]+", "-", str(name), flags=re.IGNORECASE)
    return slug.strip("-") or fallback
