from __future__ import annotations
import hashlib
import os
import shutil
import tempfile
import urllib.parse
import urllib.request
from pathlib import Path, PurePosixPath
from typing import Optional
from .errors import ApplierError
from .logging_setup import get_logger

log = get_logger("sysconf.applier.fetch")

_CHUNK = 1 << 16


class DownloadError(ApplierError):
    pass


def sha256_of(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for chunk in iter(lambda: f.read(_CHUNK), b""):
            h.update(chunk)
    return h.hexdigest()


def filename_from_url(url: str, default: str = "download") -> str:
    """Last path segment of `url`, without query or fragment."""
    path = urllib.parse.unquote(urllib.parse.urlsplit(url).path).replace("\\", "/")
    return PurePosixPath(path).name or default


def download(url: str, dest: Path, *, sha256: Optional[str] = None, timeout: float = 60.0) -> Path:
    """
    Fetch `url` into `dest`, verifying the SHA-256 digest when given.

    The file is written next to `dest` first and only renamed into place once
    complete and verified. An existing `dest` with a matching digest is reused.
    """
    expected = sha256.lower() if sha256 else None
    if dest.is_file() and expected and sha256_of(dest) == expected:
        log.info("Download cached and verified: %s", dest)
        return dest

    dest.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_name = tempfile.mkstemp(prefix=dest.name + ".", suffix=".part", dir=str(dest.parent))
    tmp = Path(tmp_name)
    log.info("Downloading %s -> %s", url, dest)
    try:
        with os.fdopen(fd, "wb") as out, urllib.request.urlopen(url, timeout=timeout) as resp:
            shutil.copyfileobj(resp, out, _CHUNK)
        if expected:
            actual = sha256_of(tmp)
            if actual != expected:
                raise DownloadError(f"Checksum mismatch for {url}: expected {expected}, got {actual}")
        os.replace(tmp, dest)
    except DownloadError:
        tmp.unlink(missing_ok=True)
        raise
    except OSError as e:
        tmp.unlink(missing_ok=True)
        raise DownloadError(f"Download of {url} failed: {e}") from e
    return dest
