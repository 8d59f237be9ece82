from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import Optional

import requests
from tqdm import tqdm

LOGGER = logging.getLogger(__name__)


def sha256_file(path: Path) -> str:
    hasher = hashlib.sha256()
    with path.open("rb") as handle:
        for chunk in iter(lambda: handle.read(1024 * 1024), b""):
            hasher.update(chunk)
    return hasher.hexdigest()


def download_file(
    url: str,
    destination: Path,
    expected_sha256: Optional[str] = None,
    chunk_size: int = 1024 * 1024,
    timeout: float = 60,
) -> Path:
    """
    Stream ``url`` into ``destination`` through a temporary file.

    Parameters
    ----------
    url: str
        Remote URL to download.
    destination: Path
        Final location; parent directories are created.
    expected_sha256: Optional[str]
        When given, the finished file must match this digest or it is
        removed and ``ValueError`` is raised.
    chunk_size: int
        Streaming chunk size in bytes. Defaults to 1 MiB.
    timeout: float
        Socket timeout passed to ``requests``.
    """

    destination.parent.mkdir(parents=True, exist_ok=True)
    tmp_path = destination.with_suffix(destination.suffix + ".part")

    LOGGER.info("Downloading %s -> %s", url, destination)
    with requests.get(url, stream=True, timeout=timeout) as response:
        response.raise_for_status()
        total = int(response.headers.get("content-length", 0)) or None
        with tmp_path.open("wb") as handle, tqdm(
            total=total,
            unit="B",
            unit_scale=True,
            desc=f"Downloading {destination.name}",
        ) as progress:
            for chunk in response.iter_content(chunk_size=chunk_size):
                if not chunk:
                    continue
                handle.write(chunk)
                progress.update(len(chunk))

    if expected_sha256 and sha256_file(tmp_path) != expected_sha256.lower():
        tmp_path.unlink(missing_ok=True)
        raise ValueError(f"Checksum mismatch for {destination}. Expected {expected_sha256}.")

    tmp_path.replace(destination)
    return destination
