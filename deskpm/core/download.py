"""
Package binary downloader

Downloads package binaries over http(s) or from file:// URLs into a
destination directory and verifies their hash. Verified binaries can be
kept in a cache directory keyed by hash, so reinstalling the same version
does not download it again.
"""

import hashlib
import logging
import shutil
import socket
import time
import urllib.error
import urllib.request
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional, Union

from .config import DOWNLOAD_RETRIES, DOWNLOAD_TIMEOUT
from .models import HashType

logger = logging.getLogger(__name__)

USER_AGENT = 'deskpm/0.1'

CHUNK_SIZE = 65536  # 64KB chunks


@dataclass
class DownloadResult:
    """Result of a download operation."""
    success: bool
    path: Optional[Path] = None
    error: Optional[str] = None
    cached: bool = False


def file_hash(path: Union[str, Path], hash_type: HashType = HashType.SHA1) -> str:
    """Hex digest of a file."""
    h = hashlib.new(hash_type.value)
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
            h.update(chunk)
    return h.hexdigest()


def filename_from_url(url: str) -> str:
    """Last path segment of a URL, or "download"."""
    from urllib.parse import unquote, urlparse
    name = unquote(urlparse(url).path.rstrip('/').rsplit('/', 1)[-1])
    return name or "download"


class Downloader:
    """Downloads and verifies package binaries."""

    def __init__(self, cache_dir: Optional[Path] = None,
                 timeout: int = DOWNLOAD_TIMEOUT, max_retries: int = DOWNLOAD_RETRIES):
        """Initialize downloader.

        Args:
            cache_dir: Directory for verified binaries, or None to disable caching
            timeout: Connection timeout in seconds
            max_retries: Max attempts for transient errors
        """
        self.cache_dir = Path(cache_dir) if cache_dir else None
        self.timeout = timeout
        self.max_retries = max_retries

    def get_cache_path(self, hash_sum: str, filename: str) -> Optional[Path]:
        """Cache location for a binary: <cache_dir>/<hash>/<filename>."""
        if self.cache_dir is None or not hash_sum:
            return None
        return self.cache_dir / hash_sum.lower() / filename

    def _from_cache(self, cache_path: Optional[Path], dest: Path,
                    hash_sum: str, hash_type: HashType) -> bool:
        if cache_path is None or not cache_path.is_file():
            return False
        if file_hash(cache_path, hash_type) != hash_sum.lower():
            logger.warning(f"Removing corrupt cache entry {cache_path}")
            cache_path.unlink()
            return False
        shutil.copyfile(cache_path, dest)
        return True

    def _store_in_cache(self, cache_path: Optional[Path], path: Path):
        if cache_path is None:
            return
        try:
            cache_path.parent.mkdir(parents=True, exist_ok=True)
            shutil.copyfile(path, cache_path)
        except OSError as e:
            logger.warning(f"Cannot cache {path.name}: {e}")

    def download(self, url: str, dest_dir: Union[str, Path],
                 hash_sum: str = "", hash_type: HashType = HashType.SHA1,
                 filename: Optional[str] = None,
                 progress_callback: Callable[[int, int], None] = None) -> DownloadResult:
        """Download a file into a directory, with retry on transient errors.

        Args:
            url: http, https or file URL
            dest_dir: Destination directory (created if missing)
            hash_sum: Expected hex digest, or "" to skip verification
            hash_type: Hash algorithm of hash_sum
            filename: Local file name (last URL segment if None)
            progress_callback: Optional callback(downloaded, total)

        Returns:
            DownloadResult; on failure no partial file is left behind
        """
        dest_dir = Path(dest_dir)
        dest_dir.mkdir(parents=True, exist_ok=True)
        dest = dest_dir / (filename or filename_from_url(url))
        cache_path = self.get_cache_path(hash_sum, dest.name)

        if hash_sum and self._from_cache(cache_path, dest, hash_sum, hash_type):
            logger.debug(f"Using cached {dest.name}")
            return DownloadResult(success=True, path=dest, cached=True)

        temp_path = dest.with_name(dest.name + '.part')
        last_error = None
        for attempt in range(self.max_retries):
            try:
                req = urllib.request.Request(url)
                req.add_header('User-Agent', USER_AGENT)

                with urllib.request.urlopen(req, timeout=self.timeout) as response:
                    total_size = int(response.headers.get('Content-Length', 0) or 0)
                    downloaded = 0
                    h = hashlib.new(hash_type.value)

                    with open(temp_path, 'wb') as f:
                        while True:
                            chunk = response.read(CHUNK_SIZE)
                            if not chunk:
                                break
                            f.write(chunk)
                            h.update(chunk)
                            downloaded += len(chunk)

                            if progress_callback:
                                progress_callback(downloaded, total_size)

                if hash_sum and h.hexdigest() != hash_sum.lower():
                    temp_path.unlink()
                    return DownloadResult(
                        success=False,
                        error=f"Hash sum ({hash_type.value}) {h.hexdigest()} found, "
                              f"but {hash_sum.lower()} was expected. "
                              f"The file has changed."
                    )

                temp_path.replace(dest)
                if hash_sum:
                    self._store_in_cache(cache_path, dest)
                logger.debug(f"Downloaded {url} to {dest}")
                return DownloadResult(success=True, path=dest)

            except urllib.error.HTTPError as e:
                # HTTP errors (404, 500, etc.) - don't retry
                self._remove_partial(temp_path)
                return DownloadResult(success=False, error=f"HTTP {e.code}: {e.reason}")
            except (urllib.error.URLError, socket.timeout, OSError) as e:
                # Transient errors - retry with backoff
                self._remove_partial(temp_path)
                last_error = str(e.reason) if hasattr(e, 'reason') else str(e)
                if url.startswith('file:'):
                    break
                if attempt < self.max_retries - 1:
                    logger.debug(f"Download of {url} failed ({last_error}), retrying")
                    time.sleep(1 * (attempt + 1))  # 1s, 2s, 3s backoff
                    continue

        return DownloadResult(
            success=False,
            error=f"Error downloading {url}: {last_error}"
        )

    @staticmethod
    def _remove_partial(path: Path):
        try:
            if path.exists():
                path.unlink()
        except OSError as e:
            logger.warning(f"Cannot remove {path}: {e}")

