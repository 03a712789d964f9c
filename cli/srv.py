"""CLI commands for the edge-infer control surface."""

from __future__ import annotations

import json
import sys

import click


@click.group("srv")
def srv():
    """HTTP control surface."""


@srv.command()
@click.option("--host", default=None, help="Interface to bind (default from config)")
@click.option("--port", default=None, type=int, help="Port to listen on (default 8080)")
@click.option("--assets-dir", default=None, type=click.Path(), help="Directory with labels.txt and model files")
@click.option("--config", default=None, help="Path to models.yaml config")
@click.option("--backend", default="onnx", show_default=True, help="Backend implementation")
@click.option("--broker", default=None, help="MQTT broker host for offload mode")
@click.option("--broker-port", default=None, type=int, help="MQTT broker port")
@click.option("--log-level", default="info", show_default=True)
def start(
    host: str | None,
    port: int | None,
    assets_dir: str | None,
    config: str | None,
    backend: str,
    broker: str | None,
    broker_port: int | None,
    log_level: str,
) -> None:
    """Start the control surface."""
    import uvicorn

    from edge_infer.app import create_app
    from edge_infer.config import EdgeConfig, load_models_config
    from edge_infer.logging_config import setup_logging

    setup_logging(log_level)
    overrides = {
        "host": host,
        "port": port,
        "assets_dir": assets_dir,
        "models_config_path": config,
        "broker_host": broker,
        "broker_port": broker_port,
    }
    edge_config = EdgeConfig(
        log_level=log_level, **{k: v for k, v in overrides.items() if v is not None}
    )

    models_config = load_models_config(edge_config.models_config_path)
    app = create_app(config=edge_config, models_config=models_config, backend=backend)

    click.echo(f"Starting edge-infer on http://{edge_config.host}:{edge_config.port}")
    uvicorn.run(app, host=edge_config.host, port=edge_config.port, log_level=log_level)


def _client(url: str):
    from edge_infer.client import ControlClient

    return ControlClient(base_url=url)


def _call(url: str, method: str, *args) -> None:
    try:
        with _client(url) as client:
            data = getattr(client, method)(*args)
        click.echo(json.dumps(data, indent=2))
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)


@srv.command()
@click.option("--url", default="http://127.0.0.1:8080")
def health(url: str) -> None:
    """Check service health."""
    _call(url, "health")


@srv.command("set-model")
@click.argument("name")
@click.option("--url", default="http://127.0.0.1:8080")
def set_model(name: str, url: str) -> None:
    """Select the model used for local tasks."""
    _call(url, "set_model", name)


@srv.command("set-delegate")
@click.argument("mode")
@click.option("--url", default="http://127.0.0.1:8080")
def set_delegate(mode: str, url: str) -> None:
    """Select cpu, gpu, npu or offload."""
    _call(url, "set_delegate", mode)
