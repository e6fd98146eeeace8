"""Text sources — list document files and fetch their text.

Two sources are provided:

* :class:`FileSystemSource` walks a local directory up to a depth bound.
* :class:`GithubSource` lists a repository tree through the GitHub REST API
  and downloads blobs.

Both recognise ``.md``, ``.mdx`` and ``.pdf`` files (lower-case suffixes
only); PDF text is extracted
with ``pypdf``.
"""

from __future__ import annotations

import asyncio
import base64
import io
import logging
from pathlib import Path
from typing import Any

import requests
from pypdf import PdfReader

from knowledge_mind.base import TextSource
from knowledge_mind.errors import ProviderUnavailableError, ValidationError
from knowledge_mind.models import LOCAL_OWNER, SourceItem, SourceType

logger = logging.getLogger(__name__)

DOCUMENT_EXTENSIONS = (".md", ".mdx", ".pdf")


def is_document_path(path: str) -> bool:
    return path.endswith(DOCUMENT_EXTENSIONS)


def extract_pdf_text(data: bytes) -> str:
    """Concatenate the text of every page of a PDF, one page per block."""
    reader = PdfReader(io.BytesIO(data))
    return "\n".join(page.extract_text() or "" for page in reader.pages)


def decode_document(path: str, data: bytes) -> str:
    if path.endswith(".pdf"):
        return extract_pdf_text(data)
    return data.decode("utf-8", errors="replace")


class FileSystemSource(TextSource):
    """Documents under a local directory.

    Parameters
    ----------
    root:
        Directory to index.  Its base name becomes the documents'
        ``repo_name``; the owner is always ``"__local__"``.
    max_depth:
        How many directory levels below *root* are visited (``0`` means only
        *root* itself).
    """

    def __init__(self, root: str | Path, max_depth: int = 10) -> None:
        if not str(root).strip():
            raise ValidationError("directory_path is required")
        self.root = Path(root).expanduser().resolve()
        self.max_depth = max_depth

    @property
    def repo_name(self) -> str:
        return self.root.name

    def list_items(self) -> list[SourceItem]:
        if not self.root.is_dir():
            raise ValidationError(f"Directory does not exist: {self.root}")
        return [
            SourceItem(
                repo_owner=LOCAL_OWNER,
                repo_name=self.repo_name,
                path=str(path),
                source_type=SourceType.LOCAL,
                locator=str(path),
            )
            for path in self._walk(self.root, 0)
        ]

    async def fetch(self, item: SourceItem) -> str:
        return await asyncio.to_thread(self._read, Path(item.locator))

    def _walk(self, directory: Path, depth: int) -> list[Path]:
        if depth > self.max_depth:
            return []
        try:
            entries = sorted(directory.iterdir())
        except OSError as exc:
            logger.debug("Cannot read directory %s: %s", directory, exc)
            return []

        found: list[Path] = []
        for entry in entries:
            try:
                if entry.is_dir():
                    found.extend(self._walk(entry, depth + 1))
                elif is_document_path(entry.name):
                    found.append(entry)
            except OSError as exc:
                logger.debug("Skipping %s: %s", entry, exc)
        return found

    @staticmethod
    def _read(path: Path) -> str:
        return decode_document(path.name, path.read_bytes())


class GithubSource(TextSource):
    """Documents in a GitHub repository branch.

    Parameters
    ----------
    owner / repo:
        Repository coordinates.
    branch:
        Branch, tag or tree sha to list.
    token:
        Optional personal access token (raises the API rate limit).
    api_url:
        REST API root, overridable for GitHub Enterprise.
    timeout:
        Per-request timeout in seconds.
    """

    def __init__(
        self,
        owner: str,
        repo: str,
        branch: str = "main",
        *,
        token: str = "",
        api_url: str = "https://api.github.com",
        timeout: int = 60,
    ) -> None:
        if not owner or not repo:
            raise ValidationError("owner and repo are required")
        self.owner = owner
        self.repo = repo
        self.branch = branch or "main"
        self._api_url = api_url.rstrip("/")
        self._timeout = timeout
        self._headers = {"Accept": "application/vnd.github+json"}
        if token:
            self._headers["Authorization"] = f"Bearer {token}"

    def list_items(self) -> list[SourceItem]:
        payload = self._get_json(f"git/trees/{self.branch}", params={"recursive": "1"})
        if payload.get("truncated"):
            logger.warning("GitHub tree for %s/%s is truncated", self.owner, self.repo)
        return [
            SourceItem(
                repo_owner=self.owner,
                repo_name=self.repo,
                path=entry["path"],
                source_type=SourceType.GITHUB,
                locator=entry["sha"],
            )
            for entry in payload.get("tree", [])
            if entry.get("type") == "blob" and is_document_path(entry["path"])
        ]

    async def fetch(self, item: SourceItem) -> str:
        return await asyncio.to_thread(self._read_blob, item)

    def _read_blob(self, item: SourceItem) -> str:
        payload = self._get_json(f"git/blobs/{item.locator}")
        data = base64.b64decode(payload.get("content", ""))
        return decode_document(item.path, data)

    def _get_json(self, endpoint: str, params: dict[str, str] | None = None) -> dict[str, Any]:
        url = f"{self._api_url}/repos/{self.owner}/{self.repo}/{endpoint}"
        try:
            resp = requests.get(url, headers=self._headers, params=params, timeout=self._timeout)
            resp.raise_for_status()
        except (requests.ConnectionError, requests.Timeout) as exc:
            raise ProviderUnavailableError(f"GitHub API unreachable: {exc}") from exc
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            if status == 404:
                raise ValidationError(
                    f"Not found on GitHub: {self.owner}/{self.repo} ({endpoint})"
                ) from exc
            if status == 401:
                raise ValidationError(f"GitHub rejected the token for {self.owner}/{self.repo}") from exc
            # 403/429 are rate limits or access denials, 5xx are outages.
            raise ProviderUnavailableError(f"GitHub API error {status}: {exc}") from exc
        return resp.json()
