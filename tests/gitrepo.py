"""Throwaway repositories for tests, built with the git CLI."""

from __future__ import annotations

import os
import subprocess
import tempfile
import unittest
from pathlib import Path
from unittest import mock


class GitTestCase(unittest.TestCase):
    """Runs each test with an isolated HOME and git configuration."""

    def setUp(self) -> None:
        tmp = tempfile.TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.tmp = Path(tmp.name).resolve()
        self.home = self.tmp / "home"
        self.home.mkdir()
        global_config = self.home / ".gitconfig"
        global_config.write_text("")

        env = mock.patch.dict(
            os.environ,
            {
                "HOME": str(self.home),
                "GIT_CONFIG_NOSYSTEM": "1",
                "GIT_CONFIG_GLOBAL": str(global_config),
                "GIT_AUTHOR_NAME": "Test Author",
                "GIT_AUTHOR_EMAIL": "author@example.com",
                "GIT_COMMITTER_NAME": "Test Author",
                "GIT_COMMITTER_EMAIL": "author@example.com",
                "GIT_TERMINAL_PROMPT": "0",
            },
        )
        env.start()
        self.addCleanup(env.stop)
        os.environ.pop("SSH_AUTH_SOCK", None)
        os.environ.pop("GIT_SURVEY_TOKEN", None)
        os.environ.pop("GIT_SURVEY_CONFIG", None)
        os.environ.pop("XDG_CONFIG_HOME", None)

    def git(self, repo: Path, *args: str) -> str:
        result = subprocess.run(
            ["git", *args],
            cwd=repo,
            capture_output=True,
            text=True,
            check=False,
        )
        if result.returncode != 0:
            raise AssertionError(f"git {' '.join(args)} failed: {result.stderr}")
        return result.stdout.strip()

    def init_repo(self, name: str, *, bare: bool = False) -> Path:
        path = self.tmp / name
        path.mkdir(parents=True)
        args = ["init", "-q", "-b", "main"]
        if bare:
            args.append("--bare")
        self.git(path, *args)
        return path

    def commit(self, repo: Path, filename: str = "file.txt", content: str | None = None) -> str:
        target = repo / filename
        target.parent.mkdir(parents=True, exist_ok=True)
        existing = target.read_text() if target.exists() else ""
        target.write_text(content if content is not None else existing + "line\n")
        self.git(repo, "add", filename)
        self.git(repo, "commit", "-q", "-m", f"change {filename}")
        return self.git(repo, "rev-parse", "HEAD")

    def clone(self, source: Path, name: str) -> Path:
        target = self.tmp / name
        self.git(self.tmp, "clone", "-q", str(source), str(target))
        return target

    def origin_and_clone(self, commits: int = 1) -> tuple[Path, Path]:
        """A work repo pushed to a bare origin, plus a fresh clone of it."""
        work = self.init_repo("work")
        for _ in range(commits):
            self.commit(work)
        origin = self.init_repo("origin.git", bare=True)
        self.git(work, "remote", "add", "origin", str(origin))
        self.git(work, "push", "-q", "-u", "origin", "main")
        return work, self.clone(origin, "clone")
