#!/usr/bin/env python3
"""CLI: classify images locally or through the offload broker."""

from __future__ import annotations

import asyncio
import json
import sys
from pathlib import Path

import click


def _runtime(assets_dir, config_path, backend, broker, broker_port, timeout):
    from edge_infer.catalog import ModelCatalog
    from edge_infer.config import EdgeConfig, load_models_config
    from edge_infer.router import build_router

    overrides = {
        "assets_dir": assets_dir,
        "models_config_path": config_path,
        "broker_host": broker,
        "broker_port": broker_port,
        "offload_timeout_s": timeout,
    }
    config = EdgeConfig(**{k: v for k, v in overrides.items() if v is not None})
    catalog = ModelCatalog(load_models_config(config.models_config_path))
    return catalog, build_router(config, catalog, backend=backend)


def _shared_options(fn):
    options = [
        click.option("--assets-dir", default=None, type=click.Path(), help="Directory with labels.txt and model files."),
        click.option("--config", "config_path", default=None, help="Path to models.yaml config."),
        click.option("--backend", default="onnx", show_default=True, help="Backend implementation."),
        click.option("--broker", default=None, help="MQTT broker host (required for offload)."),
        click.option("--broker-port", default=None, type=int, help="MQTT broker port."),
        click.option("--timeout", default=None, type=click.FloatRange(min=0, min_open=True), help="Offload timeout in seconds (max 60)."),
        click.option("--log-level", default="info", show_default=True),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


@click.command("infer")
@click.argument("image", type=click.Path(exists=True, dir_okay=False))
@click.option("--mode", default="cpu", show_default=True, help="cpu, gpu, npu or offload.")
@click.option("--model", default=None, help="Model name (default model if omitted or unknown).")
@click.option("--topk", default=5, show_default=True, type=int)
@_shared_options
def infer(image, mode, model, topk, assets_dir, config_path, backend, broker, broker_port, timeout, log_level):
    """Classify IMAGE once and print the result as JSON."""
    from edge_infer.logging_config import setup_logging
    from edge_infer.types import ExecMode, Task

    setup_logging(log_level)
    catalog, router = _runtime(assets_dir, config_path, backend, broker, broker_port, timeout)
    exec_mode = ExecMode.parse(mode)
    task = Task(
        payload=Path(image).read_bytes(),
        model=catalog.resolve(model),
        top_k=topk,
        mode=exec_mode,
        timeout_s=timeout,
    )

    async def _run():
        try:
            return await router.run(exec_mode, task)
        finally:
            if router.offload is not None:
                router.offload.disconnect()

    try:
        result = asyncio.run(_run())
    except Exception as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)
    finally:
        router.manager.unload()
    click.echo(json.dumps(result.to_dict(), indent=2))


@click.command("schedule")
@click.argument("schedule_file", type=click.Path(exists=True, dir_okay=False))
@_shared_options
def schedule(schedule_file, assets_dir, config_path, backend, broker, broker_port, timeout, log_level):
    """Run the tasks listed in SCHEDULE_FILE in order."""
    from edge_infer.logging_config import setup_logging
    from edge_infer.schedule import load_schedule, run_schedule

    setup_logging(log_level)
    try:
        tasks = load_schedule(schedule_file)
    except (FileNotFoundError, ValueError) as e:
        click.echo(f"Error: {e}", err=True)
        sys.exit(1)

    catalog, router = _runtime(assets_dir, config_path, backend, broker, broker_port, timeout)

    async def _run():
        try:
            return await run_schedule(router, catalog, tasks)
        finally:
            if router.offload is not None:
                router.offload.disconnect()

    try:
        outcomes = asyncio.run(_run())
    finally:
        router.manager.unload()
    for outcome in outcomes:
        click.echo(json.dumps(outcome.to_dict()))
    if not all(outcome.ok for outcome in outcomes):
        sys.exit(1)


@click.command("models")
@click.option("--config", "config_path", default=None, help="Path to models.yaml config.")
def models(config_path):
    """List the configured models."""
    from edge_infer.catalog import ModelCatalog
    from edge_infer.config import EdgeConfig, load_models_config

    path = config_path or EdgeConfig().models_config_path
    catalog = ModelCatalog(load_models_config(path))
    for model in catalog.all():
        marker = "*" if model == catalog.default else " "
        width, height = model.input_size
        click.echo(f"{marker} {model.name:<10} {width}x{height}  {model.file}")
