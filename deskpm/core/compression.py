"""
Compression utilities for deskpm

Auto-detects and handles multiple compression formats, both for
repository files (repository.xml, repository.xml.zst, ...) and for
package archives:
- zstd
- gzip
- xz/lzma
- bzip2
- zip (package archives only)
"""

import io
import logging
import shutil
import tarfile
import zipfile
from pathlib import Path
from typing import Union

logger = logging.getLogger(__name__)

# Magic bytes for format detection
MAGIC_ZSTD = b'\x28\xb5\x2f\xfd'
MAGIC_GZIP = b'\x1f\x8b'
MAGIC_XZ = b'\xfd7zXZ\x00'
MAGIC_BZ2 = b'BZh'
MAGIC_ZIP = b'PK\x03\x04'


def _get_zstd():
    try:
        import zstandard as zstd
    except ImportError:
        raise ImportError(
            "Module 'zstandard' required for zstd decompression. "
            "Install with: pip install zstandard"
        )
    return zstd


def detect_format(data: bytes) -> str:
    """Detect compression format from magic bytes.

    Args:
        data: First 8+ bytes of the file

    Returns:
        Format name: 'zstd', 'gzip', 'xz', 'bzip2', 'zip' or 'plain'
    """
    if data[:4] == MAGIC_ZSTD:
        return 'zstd'
    elif data[:2] == MAGIC_GZIP:
        return 'gzip'
    elif data[:6] == MAGIC_XZ:
        return 'xz'
    elif data[:3] == MAGIC_BZ2:
        return 'bzip2'
    elif data[:4] == MAGIC_ZIP:
        return 'zip'
    else:
        return 'plain'


def decompress_bytes(data: bytes) -> bytes:
    """Decompress bytes, auto-detecting format.

    Raises:
        ValueError: If the data is a zip archive (not a compressed stream)
    """
    fmt = detect_format(data)

    if fmt == 'zstd':
        zstd = _get_zstd()
        dctx = zstd.ZstdDecompressor()
        with dctx.stream_reader(io.BytesIO(data), read_across_frames=True) as reader:
            return reader.read()

    elif fmt == 'gzip':
        import gzip
        return gzip.decompress(data)

    elif fmt == 'xz':
        import lzma
        return lzma.decompress(data)

    elif fmt == 'bzip2':
        import bz2
        return bz2.decompress(data)

    elif fmt == 'zip':
        raise ValueError("zip archives cannot be decompressed as a stream")

    else:
        # Plain/uncompressed
        return data


def decompress_stream(filename: Union[str, Path]):
    """Open a possibly compressed file and return a binary stream."""
    path = Path(filename)

    with open(path, 'rb') as f:
        magic = f.read(8)

    fmt = detect_format(magic)

    if fmt == 'zstd':
        zstd = _get_zstd()
        f = open(path, 'rb')
        dctx = zstd.ZstdDecompressor()
        return dctx.stream_reader(f, read_across_frames=True, closefd=True)

    elif fmt == 'gzip':
        import gzip
        return gzip.open(path, 'rb')

    elif fmt == 'xz':
        import lzma
        return lzma.open(path, 'rb')

    elif fmt == 'bzip2':
        import bz2
        return bz2.open(path, 'rb')

    else:
        return open(path, 'rb')


def _check_member_path(dest: Path, name: str) -> Path:
    target = (dest / name).resolve()
    if target != dest and dest not in target.parents:
        raise ValueError(f"Archive member outside of the target directory: {name}")
    return target


def extract_archive(archive: Union[str, Path], dest: Union[str, Path]) -> int:
    """Unpack a package archive into a directory.

    Supports zip and tar archives (plain, gzip, xz, bzip2, zstd).

    Args:
        archive: Archive file
        dest: Existing target directory

    Returns:
        Number of extracted members

    Raises:
        ValueError: If the file is not a supported archive or a member
            would be written outside of dest
    """
    archive = Path(archive)
    dest = Path(dest).resolve()

    with open(archive, 'rb') as f:
        magic = f.read(8)
    fmt = detect_format(magic)

    if fmt == 'zip':
        with zipfile.ZipFile(archive) as zf:
            members = zf.infolist()
            for member in members:
                _check_member_path(dest, member.filename)
            zf.extractall(dest)
            return len(members)

    if fmt == 'plain' and not tarfile.is_tarfile(archive):
        raise ValueError(f"Unsupported archive format: {archive.name}")

    with decompress_stream(archive) as stream:
        # Stream mode: zstd readers are not seekable
        with tarfile.open(fileobj=stream, mode='r|') as tf:
            count = 0
            for member in tf:
                target = _check_member_path(dest, member.name)
                if member.isdir():
                    target.mkdir(parents=True, exist_ok=True)
                elif member.isfile():
                    target.parent.mkdir(parents=True, exist_ok=True)
                    src = tf.extractfile(member)
                    with open(target, 'wb') as out:
                        shutil.copyfileobj(src, out)
                    target.chmod(member.mode & 0o777 or 0o644)
                else:
                    logger.debug(f"Skipping archive member {member.name} (not a regular file)")
                    continue
                count += 1
            return count
