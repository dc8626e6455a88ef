"""Shared pytest fixtures for repository mirror tests.

Fixture Organization:
    - Configuration: cache reset around every test
    - Mirror fixtures: in-memory blob store, keyspace, summary generator
    - Record fixtures: SQLite database file under tmp_path
    - Archive builders: gzip tarballs built with tarfile, shaped like
      repository archives (single synthetic top-level directory)
"""

import io
import sys
import tarfile
from pathlib import Path

import pytest
import pytest_asyncio

from mirror.config import reset_config
from mirror.keyspace import TenantKeyspace
from mirror.records import RecordStore
from mirror.reindex import ReindexNotifier
from mirror.summary import SummaryGenerator

# Add tests directory to sys.path so tests can import the mocks package
tests_dir = Path(__file__).parent
if str(tests_dir) not in sys.path:
    sys.path.insert(0, str(tests_dir))

from mocks.blob_store_mock import InMemoryBlobStore  # noqa: E402

ARCHIVE_ROOT = "octo-docs-3f2a9c1"


def build_tarball(
    files: dict[str, bytes | str],
    root: str | None = ARCHIVE_ROOT,
    fmt: int = tarfile.USTAR_FORMAT,
    directories: list[str] | None = None,
    symlinks: dict[str, str] | None = None,
) -> bytes:
    """Build a gzip tar archive in memory.

    Args:
        files: Repository-relative path -> content
        root: Synthetic top-level directory (None for a flat archive)
        fmt: tarfile format (USTAR_FORMAT, GNU_FORMAT, PAX_FORMAT)
        directories: Extra directory members to include
        symlinks: Link path -> target members to include

    Returns:
        gzip-compressed tar bytes
    """

    def member_name(path: str) -> str:
        return f"{root}/{path}" if root else path

    buf = io.BytesIO()
    with tarfile.open(fileobj=buf, mode="w:gz", format=fmt) as tar:
        if root:
            info = tarfile.TarInfo(root)
            info.type = tarfile.DIRTYPE
            tar.addfile(info)
        for directory in directories or []:
            info = tarfile.TarInfo(member_name(directory))
            info.type = tarfile.DIRTYPE
            tar.addfile(info)
        for path, content in files.items():
            data = content.encode("utf-8") if isinstance(content, str) else content
            info = tarfile.TarInfo(member_name(path))
            info.size = len(data)
            tar.addfile(info, io.BytesIO(data))
        for link, target in (symlinks or {}).items():
            info = tarfile.TarInfo(member_name(link))
            info.type = tarfile.SYMTYPE
            info.linkname = target
            tar.addfile(info)
    return buf.getvalue()


@pytest.fixture(autouse=True)
def clean_config():
    """Reset the configuration singleton before and after each test."""
    reset_config()
    yield
    reset_config()


@pytest.fixture
def blob_store():
    """Empty in-memory blob store."""
    return InMemoryBlobStore()


@pytest.fixture
def keyspace(blob_store):
    """TenantKeyspace over the in-memory blob store."""
    return TenantKeyspace(blob_store)


@pytest.fixture
def summaries(keyspace):
    return SummaryGenerator(keyspace)


@pytest_asyncio.fixture
async def notifier():
    """Disabled reindex notifier (every trigger is skipped), drained on teardown."""
    notifier = ReindexNotifier(enabled=False)
    yield notifier
    await notifier.drain()


@pytest_asyncio.fixture
async def record_store(tmp_path):
    """RecordStore on a fresh SQLite file with tables created."""
    store = RecordStore(f"sqlite+aiosqlite:///{tmp_path / 'records.db'}")
    await store.create_tables()
    yield store
    await store.close()


@pytest.fixture
def make_tarball():
    """Archive builder, see build_tarball()."""
    return build_tarball
