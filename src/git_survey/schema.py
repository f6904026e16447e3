"""MCP-compatible tool schema for AI agents."""

from __future__ import annotations

from ._version import __version__


def get_tool_schema() -> dict:
    """Generate MCP-compatible tool schema for AI agents."""
    return {
        "name": "git-survey",
        "version": __version__,
        "description": "Report branch, upstream divergence and working tree state for every Git repository under one or more directories. Repositories are resolved in parallel; an unreachable remote never hides the rest of a repository's status.",
        "usage": "git-survey status [paths...] [options]",
        "tools": [
            {
                "name": "status",
                "description": "Show status of all Git repositories. By default compares against the locally cached remote-tracking refs (fast, possibly stale); use --fetch to contact remotes first.",
                "inputSchema": {
                    "type": "object",
                    "properties": {
                        "paths": {
                            "type": "array",
                            "items": {"type": "string"},
                            "description": "Directories to scan (default: paths from the config file, else the current directory)",
                        },
                        "json": {
                            "type": "boolean",
                            "description": "Output as JSON for machine parsing",
                            "default": False,
                        },
                        "fetch": {
                            "type": "boolean",
                            "description": "Fetch each upstream branch before comparing (slower, up to date)",
                            "default": False,
                        },
                        "timeout": {
                            "type": "number",
                            "description": "Seconds allowed for contacting one remote",
                            "default": 5.0,
                        },
                        "jobs": {
                            "type": "integer",
                            "description": "Number of parallel workers (default: CPU count)",
                        },
                        "sequential": {
                            "type": "boolean",
                            "description": "Run sequentially instead of parallel",
                            "default": False,
                        },
                        "include_email": {
                            "type": "boolean",
                            "description": "Report the effective user.email of each repository",
                            "default": False,
                        },
                        "include_ignored": {
                            "type": "boolean",
                            "description": "Count ignored files as untracked",
                            "default": False,
                        },
                        "include_submodules": {
                            "type": "boolean",
                            "description": "List each repository's submodules and their checkout state",
                            "default": False,
                        },
                    },
                    "required": [],
                },
                "outputSchema": {
                    "type": "object",
                    "properties": {
                        "repositories": {
                            "type": "array",
                            "items": {
                                "type": "object",
                                "properties": {
                                    "path": {"type": "string"},
                                    "name": {"type": "string"},
                                    "branch": {"type": ["string", "null"]},
                                    "detached": {"type": "boolean"},
                                    "upstream": {"type": ["string", "null"]},
                                    "sync_status": {
                                        "type": "string",
                                        "enum": [
                                            "clean",
                                            "ahead",
                                            "behind",
                                            "diverged",
                                            "no_upstream",
                                            "detached",
                                            "remote_error",
                                            "error",
                                        ],
                                    },
                                    "ahead": {"type": ["integer", "null"]},
                                    "behind": {"type": ["integer", "null"]},
                                    "fetched": {
                                        "type": "boolean",
                                        "description": "False means ahead/behind used the cached remote-tracking ref",
                                    },
                                    "remote_error": {
                                        "type": ["object", "null"],
                                        "properties": {
                                            "kind": {
                                                "type": "string",
                                                "enum": [
                                                    "invalid_remote",
                                                    "unreachable",
                                                    "auth_failed",
                                                    "ref_not_found",
                                                ],
                                            },
                                            "message": {"type": "string"},
                                        },
                                    },
                                    "dirty": {
                                        "type": ["array", "null"],
                                        "items": {
                                            "type": "string",
                                            "enum": [
                                                "clean",
                                                "unstaged",
                                                "staged",
                                                "untracked",
                                                "submodule",
                                            ],
                                        },
                                    },
                                    "bare": {"type": "boolean"},
                                    "url": {"type": ["string", "null"]},
                                    "email": {"type": ["string", "null"]},
                                    "submodules": {
                                        "type": ["array", "null"],
                                        "items": {
                                            "type": "object",
                                            "properties": {
                                                "name": {"type": "string"},
                                                "path": {"type": "string"},
                                                "status": {
                                                    "type": "string",
                                                    "enum": [
                                                        "current",
                                                        "uninitialized",
                                                        "modified",
                                                        "conflict",
                                                    ],
                                                },
                                            },
                                        },
                                    },
                                    "error": {"type": ["string", "null"]},
                                    "not_a_repository": {"type": "string"},
                                },
                            },
                        },
                        "summary": {
                            "type": "object",
                            "properties": {
                                "total": {"type": "integer"},
                                "clean": {"type": "integer"},
                                "dirty": {"type": "integer"},
                                "ahead": {"type": "integer"},
                                "behind": {"type": "integer"},
                                "diverged": {"type": "integer"},
                                "no_upstream": {"type": "integer"},
                                "detached": {"type": "integer"},
                                "remote_errors": {"type": "integer"},
                                "errors": {"type": "integer"},
                                "not_repositories": {"type": "integer"},
                            },
                        },
                        "cancelled": {"type": "boolean"},
                    },
                },
                "examples": [
                    {
                        "description": "Check status of all repos in ~/Development",
                        "command": "git-survey status ~/Development --json",
                    },
                    {
                        "description": "Fetch upstream branches first, 10 seconds per remote",
                        "command": "git-survey status --fetch --timeout 10 --json",
                    },
                ],
            },
        ],
        "configFile": {
            "description": "Optional TOML file; command line options take precedence",
            "priority": [
                "$GIT_SURVEY_CONFIG",
                "$XDG_CONFIG_HOME/git-survey.toml",
                "$XDG_CONFIG_HOME/git-survey/config.toml",
                "~/.config/git-survey.toml",
            ],
            "example": 'paths = ["~/src", "$HOME/work"]\nfetch_remote = false\ncontact_timeout = 5\ndisplay_mode = "standard"',
        },
        "notes": [
            "All output modes share the same exit codes: 0 on success, 2 on configuration errors, 130 when interrupted",
            "HTTPS tokens are read from $GIT_SURVEY_TOKEN or the https_token config key",
            "SSH remotes are tried with the SSH agent first, then IdentityFile entries from ~/.ssh/config, then default keys",
        ],
    }
