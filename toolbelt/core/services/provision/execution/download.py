"""
L4 Execution — Download, checksum verification and extraction.

HTTP fetches go through ``urllib.request`` with a fixed User-Agent and
socket timeout.  Every function returns a result dict and never
raises for network or archive errors.
"""

from __future__ import annotations

import hashlib
import logging
import os
import shutil
import tarfile
import tempfile
import urllib.request
import zipfile
from pathlib import Path
from typing import Any

from toolbelt.core.services.provision.data.constants import HTTP_TIMEOUT, USER_AGENT

logger = logging.getLogger(__name__)

_TAR_SUFFIXES = (".tar.gz", ".tgz", ".tar.xz", ".txz", ".tar.bz2", ".tar")


def _open(url: str, timeout: int = HTTP_TIMEOUT):
    req = urllib.request.Request(url, headers={"User-Agent": USER_AGENT})
    return urllib.request.urlopen(req, timeout=timeout)


def fetch_text(url: str, *, timeout: int = HTTP_TIMEOUT) -> dict[str, Any]:
    """GET a small text resource (``stable.txt``, a ``.sha256sum`` file).

    Returns:
        ``{"ok": True, "text": "..."}`` or ``{"ok": False, "error": "..."}``.
    """
    try:
        with _open(url, timeout) as resp:
            text = resp.read().decode("utf-8", errors="replace")
    except Exception as exc:
        return {"ok": False, "error": f"Failed to fetch {url}: {exc}"}
    return {"ok": True, "text": text.strip()}


def download_file(url: str, dest: Path, *, timeout: int = HTTP_TIMEOUT) -> dict[str, Any]:
    """Stream ``url`` into ``dest``.  A partial file is removed on failure."""
    dest.parent.mkdir(parents=True, exist_ok=True)
    logger.info("Downloading %s", url)
    downloaded = 0
    try:
        with _open(url, timeout) as resp, open(dest, "wb") as f:
            while True:
                chunk = resp.read(8192)
                if not chunk:
                    break
                f.write(chunk)
                downloaded += len(chunk)
    except Exception as exc:
        dest.unlink(missing_ok=True)
        return {"ok": False, "error": f"Download failed: {url}: {exc}"}

    return {"ok": True, "path": str(dest), "size_bytes": downloaded}


def _verify_checksum(path: Path, expected: str) -> bool:
    """Verify file checksum.  Format: ``algo:hex``.

    Supports any ``hashlib`` algorithm (sha256, sha512, sha1, md5).
    """
    algo, expected_hash = expected.split(":", 1)
    h = hashlib.new(algo.lower())
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(8192), b""):
            h.update(chunk)
    return h.hexdigest() == expected_hash.strip().lower()


def parse_checksum_file(text: str, filename: str) -> str | None:
    """Pick the digest for ``filename`` out of ``sha256sum`` output.

    Accepts both the single-digest form (``<hex>`` or ``<hex>  name``)
    and multi-line files listing several assets.

    Returns:
        ``"sha256:<hex>"`` or ``None`` when no line applies.
    """
    lines = [ln.split() for ln in text.splitlines() if ln.strip()]
    for parts in lines:
        if len(parts) >= 2 and parts[-1].lstrip("*") == filename:
            return f"sha256:{parts[0].lower()}"
    if len(lines) == 1:
        return f"sha256:{lines[0][0].lower()}"
    return None


def extract_archive(archive: Path, dest_dir: Path) -> dict[str, Any]:
    """Unpack a release artifact into ``dest_dir``.

    ``.tar.*`` / ``.tgz`` and ``.zip`` are extracted; anything else is
    treated as a raw binary and copied in under its own name.
    """
    dest_dir.mkdir(parents=True, exist_ok=True)
    name = archive.name
    try:
        if name.endswith(_TAR_SUFFIXES):
            with tarfile.open(archive, "r:*") as tf:
                tf.extractall(dest_dir, filter="data")
            kind = "tar"
        elif name.endswith(".zip"):
            with zipfile.ZipFile(archive, "r") as zf:
                zf.extractall(dest_dir)
            kind = "zip"
        else:
            shutil.copy2(archive, dest_dir / name)
            kind = "raw"
    except (tarfile.TarError, zipfile.BadZipFile, OSError) as exc:
        return {"ok": False, "error": f"Extract failed for {name}: {exc}"}

    return {"ok": True, "kind": kind, "dir": str(dest_dir)}


def download_script(
    url: str,
    expected_sha256: str | None = None,
    *,
    timeout: int = HTTP_TIMEOUT,
) -> dict[str, Any]:
    """Download an installer script to a tempfile, verifying SHA256 if pinned.

    The caller removes ``path`` once the script has run.

    Returns::

        {"ok": True, "path": "/tmp/toolbelt_script_xxx.sh", "sha256": "..."}
        or
        {"ok": False, "error": "SHA256 mismatch ..."}
    """
    try:
        with _open(url, timeout) as resp:
            content = resp.read()
    except Exception as exc:
        return {"ok": False, "error": f"Download failed: {url}: {exc}"}

    actual = hashlib.sha256(content).hexdigest()
    if expected_sha256:
        expected = expected_sha256.removeprefix("sha256:").lower()
        if actual != expected:
            return {
                "ok": False,
                "error": (
                    f"SHA256 mismatch for {url}\n"
                    f"Expected: {expected}\n"
                    f"Got:      {actual}"
                ),
            }
    else:
        logger.warning("Running unpinned installer script %s (sha256 %s)", url, actual)

    fd, path = tempfile.mkstemp(suffix=".sh", prefix="toolbelt_script_")
    try:
        os.write(fd, content)
    finally:
        os.close(fd)
    os.chmod(path, 0o700)

    return {"ok": True, "path": path, "sha256": actual, "size_bytes": len(content)}
