"""Local disk filesystem adapter."""

import asyncio
import shutil
import zipfile
from pathlib import Path, PurePosixPath

import httpx

from obsync import __version__
from obsync.exceptions import HttpError, IoError, NetworkError, ParseError
from obsync.logger import get_logger

from .base import FileInfo, FileSystemAdapter

logger = get_logger(__name__)

USER_AGENT = f"Mozilla/5.0 (compatible; obsync/{__version__})"


def _archive_members(names: list[str], strip_root: bool) -> list[tuple[str, PurePosixPath]]:
    """Map archive entry names to relative output paths, skipping directories."""
    files = [name for name in names if not name.endswith("/")]
    roots = {PurePosixPath(name).parts[0] for name in files if PurePosixPath(name).parts}
    strip = strip_root and len(roots) == 1 and all(len(PurePosixPath(name).parts) > 1 for name in files)

    members = []
    for name in files:
        parts = PurePosixPath(name).parts
        if strip:
            parts = parts[1:]
        members.append((name, PurePosixPath(*parts)))
    return members


class LocalFileSystem(FileSystemAdapter):
    """Filesystem adapter backed by the local disk.

    Disk operations run in worker threads; downloads stream through httpx.
    """

    def __init__(
        self,
        document_directory: Path,
        timeout: float = 5.0,
        transport: httpx.AsyncBaseTransport | None = None,
        chunk_size: int = 65536,
    ) -> None:
        self._root = document_directory
        self._timeout = timeout
        self._transport = transport
        self._chunk_size = chunk_size

    @property
    def document_directory(self) -> str:
        return str(self._root)

    async def info(self, path: str) -> FileInfo:
        p = Path(path)
        exists = await asyncio.to_thread(p.exists)
        return FileInfo(exists=exists, is_directory=exists and p.is_dir())

    async def make_directory(self, path: str, intermediates: bool = False) -> None:
        try:
            await asyncio.to_thread(Path(path).mkdir, parents=intermediates, exist_ok=True)
        except OSError as e:
            raise IoError("filesystem.operation_failed", operation="mkdir", path=path, error=str(e)) from e

    async def delete(self, path: str, idempotent: bool = False) -> None:
        p = Path(path)

        def _delete() -> bool:
            if p.is_dir() and not p.is_symlink():
                shutil.rmtree(p)
                return True
            if p.exists() or p.is_symlink():
                p.unlink()
                return True
            return False

        try:
            deleted = await asyncio.to_thread(_delete)
        except OSError as e:
            raise IoError("filesystem.operation_failed", operation="delete", path=path, error=str(e)) from e

        if not deleted and not idempotent:
            raise IoError("filesystem.not_found", path=path)

    async def write_string(self, path: str, content: str) -> None:
        p = Path(path)

        def _write() -> None:
            p.parent.mkdir(parents=True, exist_ok=True)
            p.write_text(content, encoding="utf-8")

        try:
            await asyncio.to_thread(_write)
        except OSError as e:
            raise IoError("filesystem.operation_failed", operation="write", path=path, error=str(e)) from e

    async def read_string(self, path: str) -> str:
        try:
            return await asyncio.to_thread(Path(path).read_text, encoding="utf-8")
        except FileNotFoundError as e:
            raise IoError("filesystem.not_found", path=path) from e
        except OSError as e:
            raise IoError("filesystem.operation_failed", operation="read", path=path, error=str(e)) from e

    async def move(self, src: str, dst: str) -> None:
        def _move() -> None:
            if Path(dst).exists():
                raise FileExistsError(dst)
            Path(dst).parent.mkdir(parents=True, exist_ok=True)
            shutil.move(src, dst)

        try:
            await asyncio.to_thread(_move)
        except OSError as e:
            raise IoError("filesystem.operation_failed", operation="move", path=src, error=str(e)) from e

    async def download_to_file(self, remote_url: str, local_path: str) -> int:
        target = Path(local_path)
        partial = target.with_name(target.name + ".part")
        written = 0
        try:
            await asyncio.to_thread(target.parent.mkdir, parents=True, exist_ok=True)
            async with httpx.AsyncClient(
                follow_redirects=True, timeout=self._timeout, transport=self._transport
            ) as client:
                async with client.stream("GET", remote_url, headers={"User-Agent": USER_AGENT}) as response:
                    if not response.is_success:
                        raise HttpError(response.status_code, remote_url)

                    with open(partial, "wb") as out_file:
                        async for chunk in response.aiter_bytes(chunk_size=self._chunk_size):
                            out_file.write(chunk)
                            written += len(chunk)
            partial.replace(target)
        except httpx.HTTPError as e:
            partial.unlink(missing_ok=True)
            raise NetworkError("network.request_failed", url=remote_url, error=str(e)) from e
        except OSError as e:
            partial.unlink(missing_ok=True)
            raise IoError("filesystem.operation_failed", operation="download", path=local_path, error=str(e)) from e
        except BaseException:
            partial.unlink(missing_ok=True)
            raise

        logger.debug(f"Downloaded {written} bytes", url=remote_url, path=local_path)
        return written

    async def extract_zip(self, archive_path: str, target_dir: str, strip_root: bool = True) -> int:
        target = Path(target_dir)

        def _extract() -> int:
            target.mkdir(parents=True, exist_ok=True)
            resolved_root = target.resolve()
            count = 0
            with zipfile.ZipFile(archive_path, "r") as zip_ref:
                for name, relative in _archive_members(zip_ref.namelist(), strip_root):
                    out_path = (target / relative).resolve()
                    if relative.is_absolute() or not out_path.is_relative_to(resolved_root):
                        raise IoError("filesystem.unsafe_archive_entry", entry=name)
                    out_path.parent.mkdir(parents=True, exist_ok=True)
                    with zip_ref.open(name) as src, open(out_path, "wb") as dst:
                        shutil.copyfileobj(src, dst)
                    count += 1
            return count

        try:
            return await asyncio.to_thread(_extract)
        except zipfile.BadZipFile as e:
            raise ParseError("filesystem.invalid_archive", path=archive_path) from e
        except OSError as e:
            raise IoError("filesystem.operation_failed", operation="extract", path=archive_path, error=str(e)) from e
