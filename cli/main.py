#!/usr/bin/env python3
"""edge-infer: unified command-line interface.

Usage:

    edge-infer infer cat.jpg --mode npu --model eff0
    edge-infer infer cat.jpg --mode offload --broker 192.168.2.220
    edge-infer schedule experiment.yaml --broker 192.168.2.220
    edge-infer srv start --assets-dir ~/assets
"""

import click

from cli.infer import infer, models, schedule
from cli.srv import srv


@click.group()
def main():
    """Local or offloaded image classification for edge devices."""


main.add_command(infer)
main.add_command(schedule)
main.add_command(models)
main.add_command(srv)


if __name__ == "__main__":
    main()
