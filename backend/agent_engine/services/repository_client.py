"""
Repository Client - GitHub REST API

Reads file content at a branch and performs atomic multi-file commits using
the git data API (blobs inlined in one tree, one commit, one ref update).
Nothing lands on the branch unless the final ref update succeeds.
"""
import base64
import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Mapping, Optional
from urllib.parse import quote

import httpx

from agent_engine.services.staging import normalize_path

logger = logging.getLogger(__name__)

GITHUB_API_VERSION = "2022-11-28"
FILE_MODE = "100644"


class RepositoryError(Exception):
    """Repository API call failed"""

    def __init__(self, message: str, status_code: Optional[int] = None):
        self.status_code = status_code
        super().__init__(message)


class RepositoryFileNotFoundError(RepositoryError):
    """Path does not exist at the target branch"""

    def __init__(self, path: str):
        self.path = path
        super().__init__(f"File not found: {path}", status_code=404)


@dataclass
class CommitResult:
    sha: str
    files_committed: int


@dataclass
class DirectoryEntry:
    path: str
    name: str
    type: str  # file | dir | symlink | submodule


class GitHubRepositoryClient:
    """
    Client for one repository branch on GitHub.

    Usage:
        repo = GitHubRepositoryClient(token, "acme", "web", branch="main")
        content = await repo.read_file("README.md")
        result = await repo.commit({"README.md": "hi", "old.txt": None}, "msg")
    """

    def __init__(
        self,
        token: str,
        owner: str,
        repo: str,
        branch: str = "main",
        api_base: str = "https://api.github.com",
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 30.0,
    ):
        self.token = token
        self.owner = owner
        self.repo = repo
        self.branch = branch
        self.api_base = api_base.rstrip("/")
        self.timeout = timeout
        self._http = http_client
        self._owns_http = http_client is None

    @property
    def full_name(self) -> str:
        return f"{self.owner}/{self.repo}"

    def for_branch(self, branch: str) -> "GitHubRepositoryClient":
        """Client for another branch of the same repository, sharing the HTTP pool."""
        clone = GitHubRepositoryClient(
            token=self.token,
            owner=self.owner,
            repo=self.repo,
            branch=branch,
            api_base=self.api_base,
            http_client=self._client(),
            timeout=self.timeout,
        )
        clone._owns_http = False
        return clone

    def _client(self) -> httpx.AsyncClient:
        if self._http is None:
            self._http = httpx.AsyncClient(timeout=self.timeout)
        return self._http

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.token}",
            "Accept": "application/vnd.github+json",
            "X-GitHub-Api-Version": GITHUB_API_VERSION,
        }

    def _repo_url(self, suffix: str) -> str:
        return f"{self.api_base}/repos/{self.owner}/{self.repo}/{suffix}"

    async def _request(self, method: str, suffix: str, **kwargs) -> httpx.Response:
        try:
            response = await self._client().request(
                method, self._repo_url(suffix), headers=self._headers(), **kwargs
            )
        except httpx.HTTPError as e:
            raise RepositoryError(f"{method} {suffix} failed: {e}") from e
        if response.status_code >= 400:
            raise RepositoryError(
                f"GitHub API {response.status_code} on {method} {suffix}: {response.text[:300]}",
                status_code=response.status_code,
            )
        return response

    # ═══════════════════════════════════════════════════════════════
    # READ
    # ═══════════════════════════════════════════════════════════════

    async def read_file(self, path: str) -> str:
        """Return the UTF-8 content of ``path`` at the client's branch."""
        path = normalize_path(path)
        try:
            response = await self._request(
                "GET", f"contents/{quote(path)}", params={"ref": self.branch}
            )
        except RepositoryError as e:
            if e.status_code == 404:
                raise RepositoryFileNotFoundError(path) from e
            raise

        payload = response.json()
        if isinstance(payload, list) or payload.get("type") != "file":
            raise RepositoryError(f"{path} is not a file")

        if payload.get("encoding") == "base64":
            return _decode_base64(payload.get("content", ""), path)

        # Files over 1MB come back without inline content
        blob = await self._request("GET", f"git/blobs/{payload['sha']}")
        return _decode_base64(blob.json().get("content", ""), path)

    async def exists(self, path: str, ref: Optional[str] = None) -> bool:
        """Whether ``path`` exists at ``ref`` (default: the client's branch)."""
        try:
            await self._request(
                "GET", f"contents/{quote(normalize_path(path))}", params={"ref": ref or self.branch}
            )
        except RepositoryError as e:
            if e.status_code == 404:
                return False
            raise
        return True

    async def list_directory(self, path: str = "") -> List[DirectoryEntry]:
        """List the entries of a directory at the client's branch."""
        path = normalize_path(path)
        suffix = f"contents/{quote(path)}" if path else "contents"
        try:
            response = await self._request("GET", suffix, params={"ref": self.branch})
        except RepositoryError as e:
            if e.status_code == 404:
                raise RepositoryFileNotFoundError(path) from e
            raise

        payload = response.json()
        if not isinstance(payload, list):
            raise RepositoryError(f"{path} is not a directory")
        return [
            DirectoryEntry(path=item["path"], name=item["name"], type=item.get("type", "file"))
            for item in payload
        ]

    # ═══════════════════════════════════════════════════════════════
    # COMMIT
    # ═══════════════════════════════════════════════════════════════

    async def commit(self, files: Mapping[str, Optional[str]], message: str) -> CommitResult:
        """
        Commit all ``files`` as one new commit on the branch.

        Args:
            files: path -> new content, or None to delete the path
            message: commit message

        Returns:
            CommitResult with the new commit sha and the number of paths

        Raises:
            RepositoryError: if any API call fails; the branch is unchanged
        """
        if not files:
            raise RepositoryError("Nothing to commit")

        ref = await self._request("GET", f"git/ref/heads/{quote(self.branch)}")
        parent_sha = ref.json()["object"]["sha"]

        parent = await self._request("GET", f"git/commits/{parent_sha}")
        base_tree = parent.json()["tree"]["sha"]

        tree_entries: List[Dict[str, Any]] = []
        for path, content in files.items():
            path = normalize_path(path)
            entry: Dict[str, Any] = {"path": path, "mode": FILE_MODE, "type": "blob"}
            if content is None:
                # A null sha for a path missing from the base tree is rejected by GitHub
                if not await self.exists(path, ref=parent_sha):
                    logger.info(f"[Repo] Skipping deletion of {path}: not in {self.full_name}@{parent_sha[:7]}")
                    continue
                entry["sha"] = None
            else:
                entry["content"] = content
            tree_entries.append(entry)

        if not tree_entries:
            raise RepositoryError("Nothing to commit: every staged deletion is already absent")

        tree = await self._request(
            "POST", "git/trees", json={"base_tree": base_tree, "tree": tree_entries}
        )
        new_commit = await self._request(
            "POST",
            "git/commits",
            json={"message": message, "tree": tree.json()["sha"], "parents": [parent_sha]},
        )
        commit_sha = new_commit.json()["sha"]

        await self._request(
            "PATCH",
            f"git/refs/heads/{quote(self.branch)}",
            json={"sha": commit_sha, "force": False},
        )

        logger.info(f"[Repo] Committed {len(tree_entries)} files to {self.full_name}@{self.branch}: {commit_sha[:7]}")
        return CommitResult(sha=commit_sha, files_committed=len(tree_entries))

    async def aclose(self):
        """Close the HTTP pool if this client created it."""
        if self._owns_http and self._http is not None:
            await self._http.aclose()
            self._http = None


def _decode_base64(content: str, path: str) -> str:
    try:
        return base64.b64decode(content).decode("utf-8")
    except UnicodeDecodeError as e:
        raise RepositoryError(f"{path} is a binary or non-UTF-8 file and cannot be edited as text") from e
