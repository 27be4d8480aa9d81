from __future__ import annotations

import asyncio
import logging
import mimetypes
from pathlib import Path
from typing import Callable, Optional, Protocol

import aiohttp
from tqdm import tqdm

from mldeploy.services.config import DocumentLoaderConfig, ManagementConfig


logger = logging.getLogger(__name__)


class DocumentLoadError(RuntimeError):
    pass


class DocumentWriter(Protocol):
    async def write(self, uri: str, content: bytes, *, content_type: Optional[str] = None) -> None: ...


class RestDocumentClient:
    """Data-layer (REST API, not management) writes scoped to one database."""

    def __init__(self, config: ManagementConfig, *, session: aiohttp.ClientSession, database: str) -> None:
        self._config = config
        self._session = session
        self._database = database
        self._auth = aiohttp.BasicAuth(config.username, config.password)
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)

    async def write(self, uri: str, content: bytes, *, content_type: Optional[str] = None) -> None:
        headers = {"Content-Type": content_type or "application/octet-stream"}
        try:
            async with self._session.put(
                f"{self._config.rest_base_url}/v1/documents",
                params={"uri": uri, "database": self._database},
                data=content,
                headers=headers,
                auth=self._auth,
                timeout=self._timeout,
            ) as resp:
                if resp.status in (201, 204):
                    return
                details = (await resp.text()).strip()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise DocumentLoadError(f"Failed writing document {uri}") from exc

        raise DocumentLoadError(f"Failed writing document {uri} HTTP {resp.status} {details}".strip())


def uri_for(path: Path, root: str) -> str:
    """Document URI for `path`: its POSIX path relative to `root`, with a leading slash.

    Paths outside `root` keep their full POSIX path.
    """

    if root:
        root_path = Path(root)
        if path.is_relative_to(root_path):
            return "/" + path.relative_to(root_path).as_posix()
        # "./content" against "/project/content/docs/a.xml" and the like
        resolved_path, resolved_root = path.resolve(), root_path.resolve()
        if resolved_path.is_relative_to(resolved_root):
            return "/" + resolved_path.relative_to(resolved_root).as_posix()
    return path.as_posix()


class DocumentLoaderService:
    def __init__(
        self,
        config: ManagementConfig,
        *,
        session: Optional[aiohttp.ClientSession] = None,
        loader: Optional[DocumentLoaderConfig] = None,
        client_factory: Optional[Callable[[str], DocumentWriter]] = None,
    ) -> None:
        self._config = config
        self._session = session
        self._loader = loader or DocumentLoaderConfig()
        self._client_factory = client_factory

    def _client(self, database: str) -> DocumentWriter:
        if self._client_factory is not None:
            return self._client_factory(database)
        if self._session is None:
            raise DocumentLoadError("HTTP session not provided for document loads")
        return RestDocumentClient(self._config, session=self._session, database=database)

    @staticmethod
    def list_files(folder: Path) -> list[Path]:
        if not folder.exists() or not folder.is_dir():
            raise DocumentLoadError(f"{folder} Folder not found")
        try:
            return sorted(p for p in folder.rglob("*") if p.is_file())
        except OSError as exc:
            raise DocumentLoadError(f"{folder} Folder not found") from exc

    async def load_documents(self, root: str, folder: str, database: str) -> str:
        """Write every file under `folder` into `database`.

        Steps:
        1) Enumerate the folder recursively (missing folder is an error).
        2) Write all files concurrently (bounded by the configured concurrency),
           each under its path with `root` stripped.
        3) Wait for every write; the first failure is raised once all settled.
        """

        files = self.list_files(Path(folder))
        if not files:
            logger.info("Document load: nothing to load from %s", folder)
            return "Nothing to do"

        client = self._client(database)
        semaphore = asyncio.Semaphore(self._loader.concurrency)

        async def _write_one(path: Path) -> str:
            uri = uri_for(path, root)
            async with semaphore:
                try:
                    content = path.read_bytes()
                except OSError as exc:
                    raise DocumentLoadError(f"Error loading file {path}") from exc
                guessed, _ = mimetypes.guess_type(path.name)
                await client.write(uri, content, content_type=guessed)
            return uri

        logger.info("Document load: writing %d file(s) from %s into %s", len(files), folder, database)
        tasks = [asyncio.create_task(_write_one(path)) for path in files]

        first_error: Optional[BaseException] = None
        failed = 0
        for fut in tqdm(
            asyncio.as_completed(tasks),
            total=len(tasks),
            desc=f"Loading documents into {database}",
            unit="file",
            disable=not self._loader.show_progress,
        ):
            try:
                await fut
            except Exception as exc:
                failed += 1
                logger.error("Document load failed: %s", exc)
                if first_error is None:
                    first_error = exc

        if first_error is not None:
            logger.error("Document load: %d of %d file(s) failed", failed, len(tasks))
            if isinstance(first_error, DocumentLoadError):
                raise first_error
            raise DocumentLoadError(f"Document load into {database} failed") from first_error

        logger.info("Document load complete: %d file(s) written", len(tasks))
        return "Successfully Loaded..."
