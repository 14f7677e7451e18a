# SPDX-License-Identifier: MIT
# Copyright (c) 2025 couchdb-repl contributors

"""Tests for the command line entry point."""

import json

import pytest

from couchdb_repl import __version__
from couchdb_repl.cli import build_parser, main
from couchdb_repl.server import REPLICATOR_DB

ENVIRON = {
    "COUCHDB_ADMIN_USERNAME": "admin",
    "COUCHDB_ADMIN_PASSWORD": "admin-secret",
    "COUCHDB_REPLICATOR_USERNAME": "replicator",
    "COUCHDB_REPLICATOR_PASSWORD": "repl-secret",
    "COUCHDB_SERVER_URLS": "http://couch-a:5984,http://couch-b:5984",
    "COUCHDB_DATABASES": "orders",
}


class TestBuildParser:
    """Tests for argument parsing."""

    def test_unset_values_are_none(self):
        """Test that omitted flags do not mask environment fallbacks."""
        args = build_parser().parse_args([])
        assert args.admin_user is None
        assert args.server_url is None
        assert args.recreate_changed is None
        assert args.no_user_ctx is None
        assert args.request_timeout is None

    def test_repeatable_flags(self):
        """Test that --server-url and --db accumulate."""
        args = build_parser().parse_args(["--server-url", "http://a", "--server-url", "http://b", "--db", "x"])
        assert args.server_url == ["http://a", "http://b"]
        assert args.db == ["x"]

    def test_version(self, capsys):
        """Test that --version prints the version and exits."""
        with pytest.raises(SystemExit) as exc_info:
            build_parser().parse_args(["--version"])

        assert exc_info.value.code == 0
        assert __version__ in capsys.readouterr().out

    def test_help_lists_environment_variables(self):
        """Test that the epilog documents every variable."""
        help_text = build_parser().format_help()
        for name in ("COUCHDB_ADMIN_USERNAME", "COUCHDB_SERVER_URLS", "COUCHDB_DATABASES", "LOG_LEVEL"):
            assert name in help_text


class TestMain:
    """Tests for main."""

    def test_success(self, cluster, capsys):
        """Test a successful run against two servers."""
        exit_code = main(["--log-type", "silent"], environ=ENVIRON, server_factory=cluster.server_factory)

        assert exit_code == 0
        assert capsys.readouterr().out == "Replication setup succeeded\n"
        for server in cluster.servers.values():
            assert len(server.documents[REPLICATOR_DB]) == 1

    def test_success_logs_json(self, cluster, capsys):
        """Test that the stdout logger reports the run as JSON lines."""
        exit_code = main(
            ["--log-type", "stdout", "--log-level", "INFO"],
            environ=ENVIRON,
            server_factory=cluster.server_factory,
        )

        assert exit_code == 0
        lines = capsys.readouterr().out.splitlines()
        assert lines[-1] == "Replication setup succeeded"
        entries = [json.loads(line) for line in lines[:-1]]
        messages = [entry["message"] for entry in entries]
        assert messages[0].startswith(f"Starting couchdb-repl, version {__version__}")
        assert messages[-1] == "Replication setup succeeded"
        assert entries[-1]["extra"] == {"servers": 2, "documents": 2, "changed_documents": 2}

    def test_flags_override_environment(self, cluster):
        """Test that command line values are used over the environment."""
        exit_code = main(
            ["--log-type", "silent", "--db", "customers", "--no-user-ctx"],
            environ=ENVIRON,
            server_factory=cluster.server_factory,
        )

        assert exit_code == 0
        docs = list(cluster.servers["http://couch-a:5984"].documents[REPLICATOR_DB].values())
        assert [doc["target"] for doc in docs] == ["customers"]
        assert "user_ctx" not in docs[0]

    def test_success_confirmed_when_logging_is_quiet(self, cluster, capsys):
        """Test that the confirmation is printed even when the logger filters INFO."""
        exit_code = main(
            ["--log-type", "stdout", "--log-level", "WARNING"],
            environ=ENVIRON,
            server_factory=cluster.server_factory,
        )

        assert exit_code == 0
        assert capsys.readouterr().out == "Replication setup succeeded\n"

    def test_missing_configuration(self, cluster, capsys):
        """Test that missing inputs exit with 1 before any server is contacted."""
        exit_code = main(["--log-type", "silent"], environ={}, server_factory=cluster.server_factory)

        assert exit_code == 1
        assert "missing required configuration" in capsys.readouterr().err
        assert cluster.servers == {}

    def test_malformed_server_url(self, cluster, capsys):
        """Test that an unparsable server URL exits with 1."""
        environ = dict(ENVIRON, COUCHDB_SERVER_URLS="couch-a")

        exit_code = main(["--log-type", "silent"], environ=environ, server_factory=cluster.server_factory)

        assert exit_code == 1
        assert "couch-a" in capsys.readouterr().err

    def test_unknown_logger_type(self, cluster, capsys):
        """Test that an invalid logger type exits with 1."""
        exit_code = main(["--log-type", "syslog"], environ=ENVIRON, server_factory=cluster.server_factory)

        assert exit_code == 1
        assert "Unknown logger_type" in capsys.readouterr().err

    def test_remote_failure(self, cluster, capsys):
        """Test that a rejected admin exits with 1 and a descriptive message."""
        environ = dict(ENVIRON, COUCHDB_ADMIN_PASSWORD="wrong")

        exit_code = main(["--log-type", "silent"], environ=environ, server_factory=cluster.server_factory)

        assert exit_code == 1
        err = capsys.readouterr().err
        assert err.startswith("Replication setup failed: failed to verify admin user 'admin'")
