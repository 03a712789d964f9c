"""Tests for the click command-line interface."""

import json
from unittest.mock import MagicMock, patch

import pytest
import yaml
from click.testing import CliRunner

from cli.main import main


@pytest.fixture(autouse=True)
def quiet_cli(monkeypatch):
    # setup_logging stops edge_infer propagating, which hides records from caplog.
    monkeypatch.setattr("edge_infer.logging_config.setup_logging", lambda *a, **kw: None)
    monkeypatch.delenv("EDGE_INFER_BROKER_HOST", raising=False)


@pytest.fixture
def workspace(tmp_path, models_config, jpeg_bytes):
    config_path = tmp_path / "models.yaml"
    config_path.write_text(yaml.dump(models_config, sort_keys=False))
    (tmp_path / "labels.txt").write_text("tabby\ntiger cat\n")
    (tmp_path / "cat.jpg").write_bytes(jpeg_bytes)
    return tmp_path


def _runtime_args(workspace):
    return [
        "--backend", "mock",
        "--assets-dir", str(workspace),
        "--config", str(workspace / "models.yaml"),
    ]


def test_models_lists_catalog(workspace):
    result = CliRunner().invoke(main, ["models", "--config", str(workspace / "models.yaml")])
    assert result.exit_code == 0
    lines = result.stdout.splitlines()
    assert lines[0].startswith("* mv3")
    assert "96x96" in lines[2]


def test_infer_prints_result(workspace):
    result = CliRunner().invoke(
        main,
        ["infer", str(workspace / "cat.jpg"), "--mode", "npu", "--model", "eff0", "--topk", "2"]
        + _runtime_args(workspace),
    )
    assert result.exit_code == 0, result.output
    data = json.loads(result.stdout)
    assert data["mode"] == "npu"
    assert data["model"] == "eff0"
    assert [entry["label"] for entry in data["topk"]] == ["tabby", "tiger cat"]


def test_infer_offload_without_broker_fails(workspace):
    result = CliRunner().invoke(
        main, ["infer", str(workspace / "cat.jpg"), "--mode", "offload"] + _runtime_args(workspace)
    )
    assert result.exit_code == 1


def test_schedule_reports_each_task(workspace):
    schedule = workspace / "experiment.yaml"
    schedule.write_text(
        yaml.dump(
            {
                "tasks": [
                    {"mode": "cpu", "model": "mv3", "image": "cat.jpg"},
                    {"mode": "offload", "model": "eff0", "image": "cat.jpg"},
                ]
            }
        )
    )
    result = CliRunner().invoke(main, ["schedule", str(schedule)] + _runtime_args(workspace))
    assert result.exit_code == 1
    outcomes = [json.loads(line) for line in result.stdout.splitlines() if line.startswith("{")]
    assert [o["ok"] for o in outcomes] == [True, False]


def test_schedule_bad_file(workspace):
    schedule = workspace / "bad.yaml"
    schedule.write_text("tasks: 3\n")
    result = CliRunner().invoke(main, ["schedule", str(schedule)] + _runtime_args(workspace))
    assert result.exit_code == 1


class TestSrvCommands:
    def _patched_client(self, **returns):
        client = MagicMock()
        client.__enter__.return_value = client
        for name, value in returns.items():
            getattr(client, name).return_value = value
        return patch("cli.srv._client", return_value=client), client

    def test_set_model(self):
        patcher, client = self._patched_client(set_model={"ok": True, "model": "eff0"})
        with patcher:
            result = CliRunner().invoke(main, ["srv", "set-model", "eff0"])
        assert result.exit_code == 0
        client.set_model.assert_called_once_with("eff0")
        assert json.loads(result.stdout)["model"] == "eff0"

    def test_set_delegate(self):
        patcher, client = self._patched_client(set_delegate={"ok": True, "delegate": "npu"})
        with patcher:
            result = CliRunner().invoke(main, ["srv", "set-delegate", "npu", "--url", "http://edge:8080"])
        assert result.exit_code == 0
        client.set_delegate.assert_called_once_with("npu")

    def test_health_unreachable(self):
        patcher, client = self._patched_client()
        client.health.side_effect = ConnectionError("refused")
        with patcher:
            result = CliRunner().invoke(main, ["srv", "health"])
        assert result.exit_code == 1


@pytest.mark.parametrize("timeout", ["0", "-1"])
def test_infer_rejects_non_positive_timeout(workspace, timeout):
    result = CliRunner().invoke(
        main, ["infer", str(workspace / "cat.jpg"), "--timeout", timeout] + _runtime_args(workspace)
    )
    assert result.exit_code == 2
