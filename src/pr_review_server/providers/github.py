"""
GitHub Provider Client

Thin httpx wrapper over the GitHub REST API covering exactly what the
pipeline needs:

- fetch a pull request's diff, title and description
- post a review comment on a pull request
- list repository files recursively (binary files excluded)

Failures surface as the provider error taxonomy from `core.errors`.
"""

from __future__ import annotations

import base64
import logging
import re
from typing import Any, Dict, List, Optional, Protocol

import httpx
from pydantic import BaseModel, ConfigDict, Field

from ..config import settings
from ..core.errors import raise_for_provider_status, transport_error
from ..embeddings.models import FileChunk

logger = logging.getLogger("review.github")

PROVIDER = "github"

BINARY_FILE_PATTERN = re.compile(
    r"\.(png|jpe?g|gif|bmp|ico|svg|webp|pdf|zip|gz|tgz|tar|rar|7z|jar|war|"
    r"exe|dll|so|dylib|bin|class|pyc|o|a|woff2?|ttf|eot|otf|mp3|mp4|mov|avi|"
    r"wav|ogg|webm|psd|sqlite|db|lock)$",
    re.IGNORECASE,
)


class PullRequestData(BaseModel):
    """Diff and metadata of one pull request."""

    diff: str
    title: str = Field(..., min_length=1)
    description: Optional[str] = None

    model_config = ConfigDict(extra="forbid")


class ProviderClient(Protocol):
    async def fetch_diff(self, token: str, owner: str, repo: str, pr_number: int) -> PullRequestData: ...

    async def post_comment(self, token: str, owner: str, repo: str, pr_number: int, body: str) -> None: ...

    async def list_files(self, token: str, owner: str, repo: str, path: str = "") -> List[FileChunk]: ...


def is_binary_path(path: str) -> bool:
    return bool(BINARY_FILE_PATTERN.search(path))


class GitHubClient:
    def __init__(
        self,
        base_url: Optional[str] = None,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or str(settings.github_api_base_url)).rstrip("/")
        self.timeout = timeout
        self._transport = transport

    def _client(self, token: str) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            base_url=self.base_url,
            timeout=self.timeout,
            transport=self._transport,
            headers={
                "Authorization": f"Bearer {token}",
                "X-GitHub-Api-Version": "2022-11-28",
            },
        )

    async def _send(
        self,
        client: httpx.AsyncClient,
        method: str,
        url: str,
        **kwargs: Any,
    ) -> httpx.Response:
        try:
            resp = await client.request(method, url, **kwargs)
        except httpx.TransportError as exc:
            raise transport_error(PROVIDER, exc) from exc
        raise_for_provider_status(PROVIDER, resp)
        return resp

    async def fetch_diff(self, token: str, owner: str, repo: str, pr_number: int) -> PullRequestData:
        url = f"/repos/{owner}/{repo}/pulls/{pr_number}"
        async with self._client(token) as client:
            meta = await self._send(
                client, "GET", url, headers={"Accept": "application/vnd.github+json"}
            )
            diff = await self._send(
                client, "GET", url, headers={"Accept": "application/vnd.github.v3.diff"}
            )

        data = meta.json()
        return PullRequestData(
            diff=diff.text,
            title=data.get("title") or f"PR #{pr_number}",
            description=data.get("body"),
        )

    async def post_comment(self, token: str, owner: str, repo: str, pr_number: int, body: str) -> None:
        async with self._client(token) as client:
            await self._send(
                client,
                "POST",
                f"/repos/{owner}/{repo}/issues/{pr_number}/comments",
                json={"body": body},
                headers={"Accept": "application/vnd.github+json"},
            )
        logger.info("Posted review comment on %s/%s#%d", owner, repo, pr_number)

    async def list_files(self, token: str, owner: str, repo: str, path: str = "") -> List[FileChunk]:
        """
        Walk the repository contents depth-first, returning text files.
        """
        files: List[FileChunk] = []
        async with self._client(token) as client:
            await self._walk(client, owner, repo, path, files)
        return files

    async def _walk(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        path: str,
        out: List[FileChunk],
    ) -> None:
        resp = await self._send(
            client,
            "GET",
            f"/repos/{owner}/{repo}/contents/{path}",
            headers={"Accept": "application/vnd.github+json"},
        )
        entries = resp.json()
        if isinstance(entries, dict):
            entries = [entries]

        for entry in entries:
            entry_type = entry.get("type")
            entry_path = entry.get("path", "")

            if entry_type == "dir":
                await self._walk(client, owner, repo, entry_path, out)
            elif entry_type == "file" and not is_binary_path(entry_path):
                content = await self._file_content(client, owner, repo, entry)
                if content is not None:
                    out.append(FileChunk(path=entry_path, content=content))

    async def _file_content(
        self,
        client: httpx.AsyncClient,
        owner: str,
        repo: str,
        entry: Dict[str, Any],
    ) -> Optional[str]:
        encoded = entry.get("content")
        if encoded is None:
            resp = await self._send(
                client,
                "GET",
                f"/repos/{owner}/{repo}/contents/{entry['path']}",
                headers={"Accept": "application/vnd.github+json"},
            )
            encoded = resp.json().get("content")
        if not encoded:
            return ""

        try:
            return base64.b64decode(encoded).decode("utf-8")
        except (ValueError, UnicodeDecodeError):
            logger.debug("Skipping undecodable file %s", entry.get("path"))
            return None
