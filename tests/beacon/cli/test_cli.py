"""Tests for the beacon operator CLI."""

import httpx
import pytest
import respx
from typer.testing import CliRunner

from beacon.cli.main import app
from beacon.client import TelemetryClient
from beacon.storage import FileStore

API_KEY = "0123456789abcdef0123456789abcdef"

runner = CliRunner()


@pytest.fixture
def seeded_store(tmp_path, transport, clock):
    """Store directory holding three unsent events and one identify."""
    client = TelemetryClient(store=FileStore(tmp_path), transport=transport, timer=clock, clock=clock)
    client.init(API_KEY, "user-1")
    client.log_event("Signed Up", {"plan": "pro"})
    client.log_event("Clicked")
    client.set_user_properties({"plan": "pro"})
    client.log_event("Logged Out")
    return tmp_path


def _args(command, store):
    return [*command, "--store", str(store), "--api-key", API_KEY]


class TestQueueShow:
    def test_lists_entries(self, seeded_store):
        result = runner.invoke(app, _args(["queue", "show"], seeded_store))

        assert result.exit_code == 0, result.output
        assert "Unsent entries (4)" in result.output
        assert "Signed Up" in result.output
        assert "$identify" in result.output
        assert "2023-11-14" in result.output

    def test_empty_store(self, tmp_path):
        result = runner.invoke(app, _args(["queue", "show"], tmp_path))

        assert result.exit_code == 0
        assert "No unsent entries" in result.output

    def test_other_instance_is_separate(self, seeded_store):
        result = runner.invoke(app, [*_args(["queue", "show"], seeded_store), "--instance", "other"])

        assert result.exit_code == 0
        assert "No unsent entries" in result.output

    def test_missing_store_directory(self, tmp_path):
        result = runner.invoke(app, _args(["queue", "show"], tmp_path / "missing"))

        assert result.exit_code == 1
        assert "Store directory not found" in result.output

    def test_bad_config_file(self, seeded_store, tmp_path):
        config = tmp_path / "beacon.ini"
        config.write_text("[beacon]\n")

        result = runner.invoke(app, [*_args(["queue", "show"], seeded_store), "--config", str(config)])

        assert result.exit_code == 1
        assert "Unsupported config format" in result.output


class TestQueueFlush:
    @pytest.mark.respx(base_url="https://api.amplitude.com")
    def test_delivers_everything(self, seeded_store, respx_mock: respx.MockRouter):
        route = respx_mock.post("/").mock(return_value=httpx.Response(200, text="success"))

        result = runner.invoke(app, _args(["queue", "flush"], seeded_store))

        assert result.exit_code == 0, result.output
        assert "Delivered 4 of 4 entries" in result.output
        assert route.call_count == 1

        after = runner.invoke(app, _args(["queue", "show"], seeded_store))
        assert "No unsent entries" in after.output

    @pytest.mark.respx(base_url="https://collector.example.com")
    def test_uses_config_endpoint(self, seeded_store, tmp_path, respx_mock: respx.MockRouter):
        route = respx_mock.post("/").mock(return_value=httpx.Response(200, text="success"))
        config = tmp_path / "beacon.yaml"
        config.write_text("beacon:\n  apiEndpoint: collector.example.com\n  batchEvents: true\n")

        result = runner.invoke(app, [*_args(["queue", "flush"], seeded_store), "--config", str(config)])

        assert result.exit_code == 0, result.output
        assert route.called

    @pytest.mark.respx(base_url="https://api.amplitude.com")
    def test_failed_upload_keeps_entries(self, seeded_store, respx_mock: respx.MockRouter):
        respx_mock.post("/").mock(return_value=httpx.Response(500, text="error"))

        result = runner.invoke(app, _args(["queue", "flush"], seeded_store))

        assert result.exit_code == 1
        assert "Delivered 0 of 4 entries" in result.output
        assert "4 entries remain queued" in result.output

    def test_empty_store(self, tmp_path):
        result = runner.invoke(app, _args(["queue", "flush"], tmp_path))

        assert result.exit_code == 0
        assert "No unsent entries" in result.output


class TestIdentityShow:
    def test_shows_record(self, seeded_store):
        result = runner.invoke(app, _args(["identity", "show"], seeded_store))

        assert result.exit_code == 0, result.output
        assert "user-1" in result.output
        assert "Sequence number: 4" in result.output

    def test_missing_record(self, tmp_path):
        result = runner.invoke(app, _args(["identity", "show"], tmp_path))

        assert result.exit_code == 1
        assert "No identity record" in result.output


def test_no_args_shows_help():
    result = runner.invoke(app, [])

    assert "queue" in result.output
    assert "identity" in result.output
