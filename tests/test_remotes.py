# SPDX-License-Identifier: Apache-2.0
# SPDX-FileCopyrightText: 2025 The Linux Foundation
"""
Tests for remote URL parsing.

This module tests project resolution and Gerrit credential detection
from git remote URLs.
"""

import pytest

from gerrit_review.gerrit.models import Credentials
from gerrit_review.remotes import (
    ParsedRemote,
    RemoteUrlError,
    detect_credentials,
    is_gerrit_remote,
    parse_remote_url,
    resolve_project,
)


class TestParseRemoteUrl:
    """Tests for parse_remote_url."""

    def test_ssh_url(self):
        """Test a full ssh URL."""
        remote = parse_remote_url("ssh://alice@Gerrit.Example.com:29418/proj/sub")
        assert remote == ParsedRemote(
            scheme="ssh",
            user="alice",
            host="gerrit.example.com",
            port=29418,
            project="proj/sub",
        )
        assert remote.is_gerrit_ssh is True

    def test_scp_like(self):
        """Test an scp-like remote."""
        remote = parse_remote_url("alice@gerrit.example.com:proj/sub.git")
        assert remote.scheme == ""
        assert remote.user == "alice"
        assert remote.project == "proj/sub"
        assert remote.is_gerrit_ssh is False

    @pytest.mark.parametrize(
        "url",
        ["", "   ", "ssh://alice@host:29418", "ssh://alice@host:29418/", "nonsense"],
    )
    def test_invalid(self, url):
        """Test URLs without a project path are rejected."""
        with pytest.raises(RemoteUrlError):
            parse_remote_url(url)

    def test_invalid_port(self):
        """Test a non-numeric port is rejected."""
        with pytest.raises(RemoteUrlError):
            parse_remote_url("ssh://alice@host:notaport/proj")


class TestResolveProject:
    """Tests for resolve_project."""

    @pytest.mark.parametrize(
        "url,expected",
        [
            ("ssh://u@h:29418/top/sub.git", "top/sub"),
            ("ssh://u@h:29418/top/sub", "top/sub"),
            ("ssh://u@h:29418/top/sub/", "top/sub"),
            ("https://gerrit.example.org/releng/tool.git", "releng/tool"),
            ("ssh://h/single", "single"),
        ],
    )
    def test_projects(self, url, expected):
        """Test scheme, host and port are stripped along with .git."""
        assert resolve_project(url) == expected

    def test_no_path(self):
        """Test a URL without a path raises."""
        with pytest.raises(RemoteUrlError):
            resolve_project("https://gerrit.example.org")


class TestDetectCredentials:
    """Tests for detect_credentials."""

    def test_gerrit_ssh(self):
        """Test user and host are extracted from a Gerrit ssh URL."""
        creds = detect_credentials("ssh://alice@gerrit.example.com:29418/proj/sub")
        assert creds == Credentials(user="alice", host="gerrit.example.com")

    @pytest.mark.parametrize(
        "url",
        [
            "https://alice@gerrit.example.com:29418/proj",
            "git://gerrit.example.com:29418/proj",
            "ssh://alice@gerrit.example.com:22/proj",
            "ssh://alice@gerrit.example.com/proj",
            "alice@gerrit.example.com:proj",
            "ssh://gerrit.example.com:29418/proj",
            "not a url",
        ],
    )
    def test_absent(self, url):
        """Test any other scheme, port or missing user yields None."""
        assert detect_credentials(url) is None

    def test_is_gerrit_remote(self):
        """Test the convenience predicate."""
        assert is_gerrit_remote("ssh://a@h:29418/p") is True
        assert is_gerrit_remote("https://h/p") is False
