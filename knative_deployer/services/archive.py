from __future__ import annotations

import logging
from pathlib import Path
import tarfile
import zipfile

from knative_deployer.services.errors import IntegrityException

logger = logging.getLogger(__name__)

_TAR_SUFFIXES = (".tar", ".tar.gz", ".tgz")


def unpack_source(src: str | Path, dest_dir: Path) -> Path:
    """Resolve a source payload to a local directory.

    Directories are used in place; ``.zip`` and tar archives are extracted into
    ``dest_dir``.
    """
    path = Path(src).expanduser()
    if not path.exists():
        raise IntegrityException(f"Source payload not found: {path}")
    if path.is_dir():
        logger.debug("Using source directory in place: %s", path)
        return path

    dest_dir.mkdir(parents=True, exist_ok=True)
    if zipfile.is_zipfile(path):
        logger.debug("Extracting zip payload %s into %s", path, dest_dir)
        with zipfile.ZipFile(path) as zf:
            zf.extractall(dest_dir)
        return dest_dir
    if path.name.endswith(_TAR_SUFFIXES) and tarfile.is_tarfile(path):
        logger.debug("Extracting tar payload %s into %s", path, dest_dir)
        with tarfile.open(path) as tf:
            _check_members(tf, dest_dir)
            tf.extractall(dest_dir)
        return dest_dir
    raise IntegrityException(f"Unsupported source payload (expected a directory, .zip or tarball): {path}")


def _check_members(tf: tarfile.TarFile, dest_dir: Path) -> None:
    root = dest_dir.resolve()
    for member in tf.getmembers():
        target = (root / member.name).resolve()
        if target != root and root not in target.parents:
            raise IntegrityException(f"Archive member escapes destination: {member.name}")
        if member.issym() or member.islnk():
            raise IntegrityException(f"Links are not allowed in source archives: {member.name}")


def targzip(source: Path, archive_name: str, dest_dir: Path) -> Path:
    """Write ``dest_dir/archive_name`` as a gzip tarball of ``source``.

    A directory is archived by its contents, a file as a single member.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    dest_path = dest_dir / archive_name
    if dest_path.resolve() == source.resolve():
        raise IntegrityException(f"Refusing to overwrite archive source {source}")

    with tarfile.open(dest_path, mode="w:gz") as tf:
        if source.is_dir():
            for child in sorted(source.iterdir()):
                tf.add(child, arcname=child.name)
        else:
            tf.add(source, arcname=source.name)
    logger.debug("Packed %s into %s (%d bytes)", source, dest_path, dest_path.stat().st_size)
    return dest_path
