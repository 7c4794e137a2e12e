from __future__ import annotations

import io
import json
import threading
import zipfile
from collections.abc import Iterator
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer
from pathlib import Path
from urllib.parse import parse_qs, urlparse

import pytest

from agent_task_api.app.repo_client import (
    RepositoryClientError,
    RepositoryHostClient,
    extract_archive,
    parse_repo_url,
)


def _zip(entries: dict[str, str]) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w") as bundle:
        for name, content in entries.items():
            bundle.writestr(name, content)
    return buffer.getvalue()


class _RepoHostHandler(BaseHTTPRequestHandler):
    archive = b""
    branch_status = 200
    seen: list[dict[str, object]] = []

    def do_POST(self) -> None:  # noqa: N802
        length = int(self.headers.get("Content-Length", "0"))
        body = json.loads(self.rfile.read(length) or b"{}")
        self.seen.append({"path": self.path, "body": body})
        self.send_response(self.branch_status)
        self.send_header("Content-Type", "application/json")
        self.end_headers()
        self.wfile.write(b"{}")

    def do_GET(self) -> None:  # noqa: N802
        parsed = urlparse(self.path)
        self.seen.append({"path": parsed.path, "query": parse_qs(parsed.query)})
        if parsed.path != "/download-repo" or not self.archive:
            self.send_response(404)
            self.end_headers()
            self.wfile.write(b"missing")
            return
        self.send_response(200)
        self.send_header("Content-Type", "application/zip")
        self.send_header("Content-Length", str(len(self.archive)))
        self.end_headers()
        self.wfile.write(self.archive)

    def log_message(self, format: str, *args: object) -> None:
        return


@pytest.fixture
def repo_host() -> Iterator[tuple[str, type[_RepoHostHandler]]]:
    handler = type("Handler", (_RepoHostHandler,), {"seen": [], "archive": b"", "branch_status": 200})
    server = ThreadingHTTPServer(("127.0.0.1", 0), handler)
    thread = threading.Thread(target=server.serve_forever, daemon=True)
    thread.start()
    try:
        yield f"http://127.0.0.1:{server.server_address[1]}", handler
    finally:
        server.shutdown()
        server.server_close()


@pytest.mark.parametrize(
    ("value", "owner", "repo"),
    [
        ("https://github.com/acme/widgets", "acme", "widgets"),
        ("https://github.com/acme/widgets.git", "acme", "widgets"),
        ("https://github.com/acme/widgets/tree/main", "acme", "widgets"),
        ("acme/widgets", "acme", "widgets"),
    ],
)
def test_parse_repo_url(value: str, owner: str, repo: str) -> None:
    ref = parse_repo_url(value)
    assert (ref.owner, ref.repo) == (owner, repo)


@pytest.mark.parametrize("value", ["", "widgets", "https://github.com/acme", "a/b/c"])
def test_parse_repo_url_rejects_garbage(value: str) -> None:
    with pytest.raises(RepositoryClientError):
        parse_repo_url(value)


def test_extract_archive_unwraps_single_top_level_folder(tmp_path: Path) -> None:
    archive = _zip({"widgets-main/README.md": "# widgets", "widgets-main/src/app.py": "print(1)"})

    extract_archive(archive, tmp_path / "repo")

    assert (tmp_path / "repo" / "README.md").read_text(encoding="utf-8") == "# widgets"
    assert (tmp_path / "repo" / "src" / "app.py").is_file()


def test_extract_archive_keeps_flat_layout(tmp_path: Path) -> None:
    extract_archive(_zip({"README.md": "flat", "lib/x.py": ""}), tmp_path / "repo")

    assert (tmp_path / "repo" / "README.md").read_text(encoding="utf-8") == "flat"
    assert (tmp_path / "repo" / "lib" / "x.py").is_file()


def test_extract_archive_rejects_path_traversal(tmp_path: Path) -> None:
    with pytest.raises(RepositoryClientError, match="Unsafe path"):
        extract_archive(_zip({"../escape.txt": "nope"}), tmp_path / "repo")
    assert not (tmp_path / "escape.txt").exists()


def test_extract_archive_rejects_non_zip(tmp_path: Path) -> None:
    with pytest.raises(RepositoryClientError, match="not a valid zip"):
        extract_archive(b"definitely not a zip", tmp_path / "repo")


def test_create_branch_posts_payload(repo_host) -> None:
    base_url, handler = repo_host
    client = RepositoryHostClient(base_url=base_url, timeout_s=5)

    assert client.create_branch("https://github.com/acme/widgets", "main", "hotfix-1") is True
    assert handler.seen[0] == {
        "path": "/create-branch",
        "body": {
            "owner": "acme",
            "repo": "widgets",
            "branchName": "hotfix-1",
            "sourceBranch": "main",
        },
    }


def test_create_branch_failure_is_reported_as_false(repo_host) -> None:
    base_url, handler = repo_host
    handler.branch_status = 500
    client = RepositoryHostClient(base_url=base_url, timeout_s=5)

    assert client.create_branch("acme/widgets", "main", "hotfix-1") is False


def test_download_repo_extracts_archive(repo_host, tmp_path: Path) -> None:
    base_url, handler = repo_host
    handler.archive = _zip({"widgets-abc123/README.md": "hello"})
    client = RepositoryHostClient(base_url=base_url, timeout_s=5)

    target = client.download_repo("acme/widgets", "hotfix-1", tmp_path / "repo")

    assert (target / "README.md").read_text(encoding="utf-8") == "hello"
    assert handler.seen[0]["query"] == {
        "owner": ["acme"],
        "repo": ["widgets"],
        "ref": ["hotfix-1"],
    }


def test_download_repo_http_error(repo_host, tmp_path: Path) -> None:
    base_url, _ = repo_host
    client = RepositoryHostClient(base_url=base_url, timeout_s=5)

    with pytest.raises(RepositoryClientError, match="Failed to download repo: 404"):
        client.download_repo("acme/widgets", "main", tmp_path / "repo")
