"""Tests for remote URL parsing, SSH config and authentication candidates."""

from __future__ import annotations

import base64
import socket
import unittest
from pathlib import Path

from gitrepo import GitTestCase

from git_survey.config import Settings
from git_survey.credentials import (
    AuthCandidate,
    AuthKind,
    RemoteUrl,
    SshConfig,
    auth_candidates,
    load_ssh_config,
    parse_remote_url,
)
from git_survey.exceptions import RemoteError, RemoteErrorKind


class ParseRemoteUrlTests(unittest.TestCase):
    def test_scp_like(self) -> None:
        self.assertEqual(
            parse_remote_url("git@github.com:owner/repo.git"),
            RemoteUrl(scheme="ssh", host="github.com", user="git", path="owner/repo.git"),
        )

    def test_ssh_url_with_port(self) -> None:
        remote = parse_remote_url("ssh://deploy@git.example.com:2222/srv/repo.git")
        self.assertEqual(remote.scheme, "ssh")
        self.assertEqual(remote.host, "git.example.com")
        self.assertEqual(remote.user, "deploy")
        self.assertEqual(remote.port, 2222)
        self.assertTrue(remote.is_ssh)

    def test_https(self) -> None:
        remote = parse_remote_url("https://github.com/owner/repo.git")
        self.assertEqual(remote.scheme, "https")
        self.assertEqual(remote.host, "github.com")
        self.assertTrue(remote.is_http)

    def test_local_paths(self) -> None:
        for url in ("/srv/git/repo.git", "../repo", "file:///srv/git/repo.git"):
            with self.subTest(url=url):
                self.assertEqual(parse_remote_url(url).scheme, "file")

    def test_remote_helper(self) -> None:
        remote = parse_remote_url("codecommit::us-east-1://myrepo")

        self.assertEqual(remote.scheme, "helper")
        self.assertEqual(remote.transport, "codecommit")
        self.assertEqual(remote.path, "us-east-1://myrepo")
        self.assertFalse(remote.is_ssh)
        self.assertFalse(remote.is_http)

    def test_invalid(self) -> None:
        for url in ("", "   ", None, "bogus://host/repo", "https:///no-host", "ssh://host:port/x"):
            with self.subTest(url=url):
                with self.assertRaises(RemoteError) as ctx:
                    parse_remote_url(url)
                self.assertEqual(ctx.exception.kind, RemoteErrorKind.INVALID_REMOTE)


SSH_CONFIG = """\
# global defaults
ServerAliveInterval 30

Host work-gh
    HostName github.com
    User git
    IdentityFile ~/.ssh/work_key

Host *.example.com !bastion.example.com
    Port 2222
    IdentityFile "%d/.ssh/example_%h"

Host=*
    User fallback
    IdentityFile ~/.ssh/shared_key
    IdentitiesOnly yes

Match host gitlab.example.org
    IdentityFile ~/.ssh/gitlab_key
"""


class SshConfigTests(GitTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.config = SshConfig.parse(SSH_CONFIG, base_dir=self.home / ".ssh")

    def test_alias_block(self) -> None:
        params = self.config.query("work-gh")

        self.assertEqual(params.hostname, "github.com")
        self.assertEqual(params.user, "git")
        self.assertEqual(
            params.identity_files,
            (self.home / ".ssh" / "work_key", self.home / ".ssh" / "shared_key"),
        )
        self.assertTrue(params.identities_only)

    def test_wildcards_and_tokens(self) -> None:
        params = self.config.query("git.example.com")

        self.assertEqual(params.port, 2222)
        self.assertEqual(params.user, "fallback")
        self.assertEqual(params.identity_files[0], self.home / ".ssh" / "example_git.example.com")

    def test_negated_pattern(self) -> None:
        params = self.config.query("bastion.example.com")

        self.assertIsNone(params.port)
        self.assertEqual(params.identity_files, (self.home / ".ssh" / "shared_key",))

    def test_host_matching_is_case_insensitive(self) -> None:
        self.assertEqual(self.config.query("WORK-GH").hostname, "github.com")

    def test_match_host_block_applies(self) -> None:
        matched = self.config.query("gitlab.example.org")
        other = self.config.query("work-gh")

        self.assertIn(self.home / ".ssh" / "gitlab_key", matched.identity_files)
        self.assertNotIn(self.home / ".ssh" / "gitlab_key", other.identity_files)

    def test_include(self) -> None:
        ssh_dir = self.home / ".ssh"
        (ssh_dir / "config.d").mkdir(parents=True)
        (ssh_dir / "config.d" / "work").write_text("Host gitlab\n    IdentityFile ~/.ssh/gl\n")
        config = SshConfig.parse("Include config.d/*\n", base_dir=ssh_dir)

        self.assertEqual(config.query("gitlab").identity_files, (ssh_dir / "gl",))

    def test_missing_file_is_empty(self) -> None:
        config = load_ssh_config(self.tmp / "missing-config")

        self.assertEqual(config.query("anything").identity_files, ())
        self.assertIsNone(config.query("anything").user)

    def test_loaded_once(self) -> None:
        path = self.tmp / "ssh_config"
        path.write_text("Host a\n    User first\n")
        first = load_ssh_config(path)
        path.write_text("Host a\n    User second\n")

        self.assertIs(load_ssh_config(path), first)
        self.assertEqual(load_ssh_config(path).query("a").user, "first")


class AuthCandidateTests(GitTestCase):
    def setUp(self) -> None:
        super().setUp()
        self.ssh_dir = self.home / ".ssh"
        self.ssh_dir.mkdir()

    def _agent_socket(self) -> str:
        path = str(self.tmp / "agent.sock")
        server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        server.bind(path)
        self.addCleanup(server.close)
        return path

    def test_ssh_agent_comes_first_then_config_keys(self) -> None:
        (self.ssh_dir / "work_key").write_text("key")
        (self.ssh_dir / "id_rsa").write_text("default")
        config_path = self.ssh_dir / "config"
        config_path.write_text("Host github.com\n    IdentityFile ~/.ssh/work_key\n")
        agent = self._agent_socket()

        candidates = list(
            auth_candidates(
                parse_remote_url("git@github.com:owner/repo.git"),
                Settings(ssh_config_path=config_path),
                environ={"SSH_AUTH_SOCK": agent},
            )
        )

        self.assertEqual(
            candidates,
            [
                AuthCandidate(AuthKind.SSH_AGENT, agent_socket=agent),
                AuthCandidate(AuthKind.SSH_KEY, key_path=self.ssh_dir / "work_key"),
            ],
        )

    def test_default_keys_when_config_names_none(self) -> None:
        (self.ssh_dir / "id_ed25519").write_text("key")
        (self.ssh_dir / "id_rsa").write_text("key")

        candidates = list(
            auth_candidates(
                parse_remote_url("ssh://git@example.org/repo.git"),
                Settings(ssh_config_path=self.ssh_dir / "config"),
                environ={"SSH_AUTH_SOCK": str(self.tmp / "no-such-socket")},
            )
        )

        self.assertEqual(
            [c.key_path for c in candidates],
            [self.ssh_dir / "id_ed25519", self.ssh_dir / "id_rsa"],
        )

    def test_ssh_without_agent_or_keys_still_tries_once(self) -> None:
        candidates = list(
            auth_candidates(
                parse_remote_url("git@example.org:repo.git"),
                Settings(ssh_config_path=self.ssh_dir / "config"),
                environ={},
            )
        )

        self.assertEqual(candidates, [AuthCandidate(AuthKind.NONE)])

    def test_https_token_then_helper(self) -> None:
        candidates = list(
            auth_candidates(
                parse_remote_url("https://github.com/owner/repo.git"),
                Settings(https_token="s3cret"),
                environ={},
            )
        )

        self.assertEqual([c.kind for c in candidates], [AuthKind.HTTPS_TOKEN, AuthKind.HTTPS_HELPER])
        self.assertEqual(candidates[0].username, "x-access-token")

    def test_https_without_token(self) -> None:
        candidates = list(
            auth_candidates(parse_remote_url("https://github.com/o/r.git"), Settings(), environ={})
        )

        self.assertEqual(candidates, [AuthCandidate(AuthKind.HTTPS_HELPER)])

    def test_local_remote_needs_no_credentials(self) -> None:
        candidates = list(auth_candidates(parse_remote_url("/srv/repo.git"), Settings(), environ={}))

        self.assertEqual(candidates, [AuthCandidate(AuthKind.NONE)])

    def test_remote_helper_gets_a_single_attempt(self) -> None:
        candidates = list(
            auth_candidates(
                parse_remote_url("codecommit::us-east-1://myrepo"),
                Settings(https_token="t"),
                environ={"SSH_AUTH_SOCK": self._agent_socket()},
            )
        )

        self.assertEqual(candidates, [AuthCandidate(AuthKind.NONE)])

    def test_candidates_are_lazy(self) -> None:
        candidates = auth_candidates(
            parse_remote_url("https://github.com/o/r.git"), Settings(https_token="t"), environ={}
        )

        self.assertEqual(next(candidates).kind, AuthKind.HTTPS_TOKEN)


class GitEnvTests(unittest.TestCase):
    def test_ssh_key_env(self) -> None:
        candidate = AuthCandidate(AuthKind.SSH_KEY, key_path=Path("/keys/id_work"))

        env = candidate.git_env({"SSH_AUTH_SOCK": "/tmp/agent", "PATH": "/bin"}, connect_timeout=2.5)

        self.assertNotIn("SSH_AUTH_SOCK", env)
        self.assertEqual(env["PATH"], "/bin")
        self.assertEqual(env["GIT_TERMINAL_PROMPT"], "0")
        command = env["GIT_SSH_COMMAND"]
        self.assertIn("BatchMode=yes", command)
        self.assertIn("ConnectTimeout=3", command)
        self.assertIn("IdentitiesOnly=yes", command)
        self.assertIn("-i /keys/id_work", command)

    def test_agent_env(self) -> None:
        env = AuthCandidate(AuthKind.SSH_AGENT, agent_socket="/run/agent").git_env({})

        self.assertEqual(env["SSH_AUTH_SOCK"], "/run/agent")
        self.assertNotIn("-i", env["GIT_SSH_COMMAND"].split())

    def test_token_env_appends_to_existing_config(self) -> None:
        candidate = AuthCandidate(AuthKind.HTTPS_TOKEN, username="bot", token="abc")

        env = candidate.git_env(
            {"GIT_CONFIG_COUNT": "1", "GIT_CONFIG_KEY_0": "core.x", "GIT_CONFIG_VALUE_0": "y"}
        )

        self.assertEqual(env["GIT_CONFIG_COUNT"], "3")
        self.assertEqual(env["GIT_CONFIG_KEY_0"], "core.x")
        self.assertEqual(env["GIT_CONFIG_KEY_1"], "credential.helper")
        self.assertEqual(env["GIT_CONFIG_VALUE_1"], "")
        self.assertEqual(env["GIT_CONFIG_KEY_2"], "http.extraHeader")
        expected = base64.b64encode(b"bot:abc").decode()
        self.assertEqual(env["GIT_CONFIG_VALUE_2"], f"Authorization: Basic {expected}")

    def test_token_is_not_in_repr(self) -> None:
        candidate = AuthCandidate(AuthKind.HTTPS_TOKEN, username="bot", token="abc")

        self.assertNotIn("abc", repr(candidate))
        self.assertNotIn("abc", candidate.describe())


if __name__ == "__main__":
    unittest.main()
