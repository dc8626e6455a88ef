"""Repository archive extraction.

Parses a gzip-compressed tar stream (the source host's tarball endpoint)
into repository-relative regular-file entries. The tar format is scanned
directly as a flat sequence of 512-byte blocks:

    [header][content padded to 512]...[zero block]

Header fields used (POSIX ustar layout):
    name      offset   0, 100 bytes
    size      offset 124,  12 bytes, octal (or base-256 when the high bit is set)
    typeflag  offset 156,   1 byte   ('0' or NUL = regular file)
    magic     offset 257,   6 bytes  ("ustar\\0" enables the prefix field)
    prefix    offset 345, 155 bytes  (joined as prefix/name)

Every tarball wraps the tree in one synthetic top-level directory
(owner-repo-revision/), which is stripped from each path. pax extended
headers ('x') and GNU long-name records ('L') are not entries themselves but
supply the path of the member that follows them.

A stream that ends mid-header or mid-content ends extraction cleanly; the
partially present member is dropped.
"""

import logging
import zlib
from collections.abc import Iterator

from .exceptions import TransportError
from .models import ArchiveEntry

logger = logging.getLogger("repo_mirror.archive")

__all__ = [
    "BLOCK_SIZE",
    "decompress_archive",
    "extract_archive",
    "iter_archive_entries",
    "iter_tar_members",
    "strip_top_level",
]

BLOCK_SIZE = 512

REGULAR_FILE_TYPES = (b"0", b"\x00")
PAX_HEADER_TYPE = b"x"
GNU_LONGNAME_TYPE = b"L"
USTAR_MAGIC = b"ustar\x00"

_ZERO_BLOCK = bytes(BLOCK_SIZE)


def decompress_archive(data: bytes) -> bytes:
    """Decompress a gzip stream, keeping whatever a truncated stream yields.

    Args:
        data: gzip-compressed bytes

    Returns:
        Decompressed tar bytes (possibly a prefix of the full archive)

    Raises:
        TransportError: If the body is not a gzip stream at all
    """
    decompressor = zlib.decompressobj(wbits=16 + zlib.MAX_WBITS)
    try:
        tar = decompressor.decompress(data)
        tar += decompressor.flush()
    except zlib.error as e:
        raise TransportError(f"Archive body is not a valid gzip stream: {e}") from e

    if not decompressor.eof:
        logger.warning(
            "archive_gzip_truncated",
            extra={"compressed_bytes": len(data), "tar_bytes": len(tar)},
        )
    return tar


def _text_field(raw: bytes) -> str:
    return raw.split(b"\x00", 1)[0].decode("utf-8", errors="replace")


def _parse_size(raw: bytes) -> int | None:
    """Decode the size field; None if it is not a number."""
    if raw[0] & 0x80:
        # base-256: big-endian remainder after the marker byte
        return int.from_bytes(raw[1:], "big")
    digits = raw.replace(b"\x00", b" ").strip()
    if not digits:
        return 0
    try:
        return int(digits.decode("ascii"), 8)
    except ValueError:
        return None


def _pax_path(body: bytes) -> str | None:
    """Extract the "path" keyword from a pax extended header body.

    Records are "<length> <keyword>=<value>\\n".
    """
    pos = 0
    path = None
    while pos < len(body):
        space = body.find(b" ", pos)
        if space < 0:
            break
        try:
            length = int(body[pos:space])
        except ValueError:
            break
        if length <= 0:
            break
        record = body[space + 1 : pos + length - 1]
        keyword, _, value = record.partition(b"=")
        if keyword == b"path":
            path = value.decode("utf-8", errors="replace")
        pos += length
    return path


def iter_tar_members(tar: bytes) -> Iterator[tuple[str, bytes]]:
    """Yield (archive path, content) for every regular file with content.

    Directories, links, zero-size files and any other member types are
    skipped. Iteration stops at the first all-zero header or when the
    remaining bytes cannot hold a complete header or member body.

    Args:
        tar: Uncompressed tar bytes

    Yields:
        (full member path, raw content bytes)
    """
    offset = 0
    total = len(tar)
    long_name: str | None = None

    while offset + BLOCK_SIZE <= total:
        header = tar[offset : offset + BLOCK_SIZE]
        if header == _ZERO_BLOCK:
            break

        size = _parse_size(header[124:136])
        if size is None:
            logger.warning("archive_header_invalid_size", extra={"offset": offset})
            break

        typeflag = header[156:157]
        offset += BLOCK_SIZE
        body_end = offset + size

        if typeflag in (PAX_HEADER_TYPE, GNU_LONGNAME_TYPE):
            if body_end > total:
                break
            body = tar[offset:body_end]
            long_name = (
                _pax_path(body)
                if typeflag == PAX_HEADER_TYPE
                else _text_field(body)
            ) or long_name
        else:
            if typeflag in REGULAR_FILE_TYPES and size > 0:
                if long_name:
                    name = long_name
                else:
                    name = _text_field(header[0:100])
                    if header[257:263] == USTAR_MAGIC:
                        prefix = _text_field(header[345:500])
                        if prefix:
                            name = f"{prefix}/{name}"
                if body_end > total:
                    logger.warning(
                        "archive_member_truncated",
                        extra={"member": name, "size": size, "available": total - offset},
                    )
                    break
                yield name, tar[offset:body_end]
            long_name = None

        # Content is padded to the next block boundary
        offset += -(-size // BLOCK_SIZE) * BLOCK_SIZE


def strip_top_level(name: str) -> str:
    """Remove the synthetic owner-repo-revision/ directory from a member path.

    A name without any "/" is returned unchanged.
    """
    slash = name.find("/")
    return name[slash + 1 :] if slash >= 0 else name


def iter_archive_entries(data: bytes) -> Iterator[ArchiveEntry]:
    """Yield repository-relative entries from a gzip tarball.

    Args:
        data: gzip-compressed tar bytes as returned by the tarball endpoint

    Yields:
        ArchiveEntry per regular file, in archive order
    """
    tar = decompress_archive(data)
    for name, content in iter_tar_members(tar):
        path = strip_top_level(name)
        if path:
            yield ArchiveEntry(path=path, data=content)


def extract_archive(data: bytes) -> list[ArchiveEntry]:
    """Extract every regular-file entry of a gzip tarball, in archive order."""
    return list(iter_archive_entries(data))
