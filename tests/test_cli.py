"""Tests for the catalogue-console command line."""
import json

import bcrypt
import pytest
from httpx import ASGITransport, AsyncClient

from catalogue_console import cli
from catalogue_console.client import ConsoleClient


class TestParser:
    def test_requires_a_command(self):
        with pytest.raises(SystemExit):
            cli.build_parser().parse_args([])

    def test_remote_defaults(self, monkeypatch):
        monkeypatch.setenv("CONSOLE_API_KEY", "from-env")
        args = cli.build_parser().parse_args(["export", "--kind", "dictionary"])
        assert args.api_key == "from-env"
        assert args.kind == "dictionary"
        assert args.url.startswith("http://localhost:")


class TestGenerateKey:
    def test_prints_key_and_matching_config(self, capsys):
        code = cli.main([
            "generate-key", "--id", "ops", "--name", "Ops", "--roles", "console:admin", "--cost", "4",
        ])
        assert code == 0

        out = capsys.readouterr().out
        lines = out.splitlines()
        raw_key = lines[1].strip()
        assert raw_key.startswith("console-")

        config = json.loads(out.split("'keys' array):\n", 1)[1])
        assert config["id"] == "ops"
        assert config["roles"] == ["console:admin"]
        assert config["revoked"] is False
        assert bcrypt.checkpw(raw_key.encode(), config["hash"].encode())

    def test_generated_keys_differ(self):
        assert cli.generate_api_key() != cli.generate_api_key()
        assert cli.generate_api_key("ci").startswith("ci-")


class TestRemoteCommands:
    """export/import/reseed against the in-process app."""

    @pytest.fixture(autouse=True)
    def _local_client(self, monkeypatch):
        def local(args) -> ConsoleClient:
            import catalogue_console.main as main_module

            return ConsoleClient("http://test", transport=ASGITransport(app=main_module.app))

        monkeypatch.setattr(cli, "_client", local)

    def test_reseed_without_secret(self, monkeypatch, capsys):
        monkeypatch.delenv("ADMIN_SECRET", raising=False)
        assert cli.main(["reseed", "--target", "catalogue"]) == 2
        assert "ADMIN_SECRET is required" in capsys.readouterr().err

    async def test_export_then_import(self, client: AsyncClient, temp_dir, capsys):
        path = temp_dir / "export.json"
        args = cli.build_parser().parse_args(["export", "-o", str(path)])
        assert await cli._export(args) == 0

        exported = json.loads(path.read_text())
        assert len(exported["furnishers"]) == 2

        args = cli.build_parser().parse_args(["import", str(path)])
        assert await cli._import(args) == 0
        out = capsys.readouterr().out
        assert "furnishers: 0 created, 2 skipped" in out

    async def test_reseed_dictionary(self, client: AsyncClient, capsys):
        from tests.conftest import TEST_ADMIN_SECRET

        args = cli.build_parser().parse_args(
            ["reseed", "--target", "dictionary", "--secret", TEST_ADMIN_SECRET]
        )
        assert await cli._reseed(args) == 0
        result = json.loads(capsys.readouterr().out)
        assert result["dataTypes"] == 2
