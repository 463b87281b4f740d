import os
import shutil
import tarfile
import zipfile
from pathlib import Path, PurePosixPath
from typing import Optional


def _target(destination: Path, member_name: str, strip_components: int) -> Optional[Path]:
    parts = [p for p in PurePosixPath(member_name).parts if p not in ("", ".")]
    if len(parts) <= strip_components:
        return None
    relative = Path(*parts[strip_components:])
    target = (destination / relative).resolve()
    if target != destination.resolve() and destination.resolve() not in target.parents:
        raise ValueError(f"archive member {member_name} escapes {destination}")
    return target


def _extract_tar(artifact: Path, destination: Path, strip_components: int):
    with tarfile.open(artifact, "r:*") as tf:
        for member in tf.getmembers():
            target = _target(destination, member.name, strip_components)
            if target is None:
                continue
            if member.isdir():
                target.mkdir(parents=True, exist_ok=True)
            elif member.isfile():
                target.parent.mkdir(parents=True, exist_ok=True)
                with tf.extractfile(member) as src, open(target, "wb") as dst:
                    shutil.copyfileobj(src, dst)
                os.chmod(target, member.mode & 0o777)
            elif member.issym():
                target.parent.mkdir(parents=True, exist_ok=True)
                if target.is_symlink() or target.exists():
                    target.unlink()
                os.symlink(member.linkname, target)


def _extract_zip(artifact: Path, destination: Path, strip_components: int):
    with zipfile.ZipFile(artifact, "r") as zf:
        for info in zf.infolist():
            target = _target(destination, info.filename, strip_components)
            if target is None:
                continue
            if info.is_dir():
                target.mkdir(parents=True, exist_ok=True)
                continue
            target.parent.mkdir(parents=True, exist_ok=True)
            with zf.open(info) as src, open(target, "wb") as dst:
                shutil.copyfileobj(src, dst)
            mode = (info.external_attr >> 16) & 0o777
            if mode:
                os.chmod(target, mode)


def extract(artifact: Path, destination: Path, strip_components: int = 0, raw_name: Optional[str] = None):
    """
    Expand a tar (any compression) or zip artifact into destination.

    An artifact that is neither is treated as a bare executable and copied to
    destination/raw_name.
    """
    artifact = Path(artifact)
    destination = Path(destination)
    destination.mkdir(parents=True, exist_ok=True)

    if tarfile.is_tarfile(artifact):
        _extract_tar(artifact, destination, strip_components)
    elif zipfile.is_zipfile(artifact):
        _extract_zip(artifact, destination, strip_components)
    elif raw_name:
        shutil.copyfile(artifact, destination / raw_name)
    else:
        raise ValueError(f"unsupported archive format: {artifact.name}")
