"""Client for the repository hosting proxy (branch creation + archive download)."""

from __future__ import annotations

import io
import json
import logging
import shutil
import zipfile
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from urllib import error, parse, request

logger = logging.getLogger(__name__)


class RepositoryClientError(RuntimeError):
    """Raised when the hosting proxy rejects a request or returns bad data."""


@dataclass(frozen=True, slots=True)
class RepoRef:
    owner: str
    repo: str


def parse_repo_url(repo_url: str) -> RepoRef:
    """Accept `https://host/owner/repo[.git]` or a bare `owner/repo`."""
    value = repo_url.strip()
    parsed = parse.urlparse(value)
    if parsed.scheme and parsed.netloc:
        parts = [part for part in parsed.path.split("/") if part]
    else:
        parts = [part for part in value.split("/") if part]
        if len(parts) != 2:
            parts = []
    if len(parts) < 2:
        raise RepositoryClientError(f"Invalid repository URL: {repo_url}")
    repo = parts[1].removesuffix(".git")
    if not parts[0] or not repo:
        raise RepositoryClientError(f"Invalid repository URL: {repo_url}")
    return RepoRef(owner=parts[0], repo=repo)


class RepositoryHostClient:
    """Small blocking client; callers move it off the event loop with to_thread."""

    def __init__(self, *, base_url: str, timeout_s: float = 60.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout_s = timeout_s

    def create_branch(self, repo_url: str, base_branch: str, new_branch: str) -> bool:
        """Try to create `new_branch` from `base_branch`; report success as a flag."""
        ref = parse_repo_url(repo_url)
        payload = {
            "owner": ref.owner,
            "repo": ref.repo,
            "branchName": new_branch,
            "sourceBranch": base_branch,
        }
        req = request.Request(
            url=f"{self.base_url}/create-branch",
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={"Content-Type": "application/json"},
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                response.read()
        except (error.URLError, TimeoutError, OSError) as exc:
            logger.warning(
                "repo_branch event=create_failed owner=%s repo=%s branch=%s reason=%s",
                ref.owner,
                ref.repo,
                new_branch,
                exc,
            )
            return False
        logger.info(
            "repo_branch event=created owner=%s repo=%s branch=%s base=%s",
            ref.owner,
            ref.repo,
            new_branch,
            base_branch,
        )
        return True

    def download_repo(self, repo_url: str, ref_name: str, target_dir: Path) -> Path:
        """Download the repository archive at `ref_name` and extract it into target_dir."""
        ref = parse_repo_url(repo_url)
        query = parse.urlencode({"owner": ref.owner, "repo": ref.repo, "ref": ref_name})
        req = request.Request(
            url=f"{self.base_url}/download-repo?{query}",
            method="GET",
            headers={"Accept": "application/zip"},
        )
        logger.info(
            "repo_download event=start owner=%s repo=%s ref=%s target=%s",
            ref.owner,
            ref.repo,
            ref_name,
            target_dir,
        )
        try:
            with request.urlopen(req, timeout=self.timeout_s) as response:
                archive = response.read()
        except error.HTTPError as exc:
            body = exc.read().decode("utf-8", errors="replace")
            raise RepositoryClientError(
                f"Failed to download repo: {exc.code} {body}".strip()
            ) from exc
        except (error.URLError, TimeoutError, OSError) as exc:
            raise RepositoryClientError(f"Failed to download repo: {exc}") from exc

        extract_archive(archive, target_dir)
        logger.info("repo_download event=extracted target=%s bytes=%d", target_dir, len(archive))
        return target_dir


def extract_archive(archive: bytes, target_dir: Path) -> None:
    """Extract a zip archive, unwrapping a single top-level folder if present."""
    try:
        bundle = zipfile.ZipFile(io.BytesIO(archive))
    except zipfile.BadZipFile as exc:
        raise RepositoryClientError("Repository archive is not a valid zip file") from exc

    with bundle:
        names = [name for name in bundle.namelist() if name and not name.endswith("/")]
        for name in bundle.namelist():
            member = PurePosixPath(name)
            if member.is_absolute() or ".." in member.parts:
                raise RepositoryClientError(f"Unsafe path in repository archive: {name}")

        top_levels = {PurePosixPath(name).parts[0] for name in bundle.namelist() if name}
        strip_prefix = len(top_levels) == 1 and all(
            len(PurePosixPath(name).parts) > 1 for name in names
        )

        target_dir.mkdir(parents=True, exist_ok=True)
        for info in bundle.infolist():
            parts = PurePosixPath(info.filename).parts
            if strip_prefix:
                parts = parts[1:]
            if not parts:
                continue
            destination = target_dir.joinpath(*parts)
            if info.is_dir():
                destination.mkdir(parents=True, exist_ok=True)
                continue
            destination.parent.mkdir(parents=True, exist_ok=True)
            with bundle.open(info) as source, destination.open("wb") as sink:
                shutil.copyfileobj(source, sink)
