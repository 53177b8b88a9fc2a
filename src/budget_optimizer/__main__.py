"""
Command line entry point: optimize one request read from a JSON file.

    python -m budget_optimizer REQUEST.json [--config PATH] [--enhanced] [--report]
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from pathlib import Path

from allocation_base import OptimizationRequest, ValidationError
from optimizer_config import get_config, load_config, reset_config
from .container import OptimizerContainer
from .logger import configure_root_logger
from .report import generate_optimization_report

logger = logging.getLogger(__name__)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog='budget-optimizer', description="Integer budget-allocation optimizer")
    parser.add_argument('request', help="Path to an OptimizationRequest JSON file")
    parser.add_argument('--config', default=os.getenv('CONFIG_PATH'),
                        help="YAML configuration file (default: $CONFIG_PATH, built-in defaults when unset)")
    parser.add_argument('--enhanced', action='store_true', help="Run the five-phase iterative optimizer")
    parser.add_argument('--report', action='store_true', help="Include the optimization report")
    return parser.parse_args(argv)


async def run(args: argparse.Namespace) -> dict:
    with open(args.request, 'r') as f:
        data = json.load(f)
    if isinstance(data, dict):
        data.setdefault('optimizationStrategy', get_config().optimizer.default_strategy)
    request = OptimizationRequest.from_dict(data)

    container = OptimizerContainer()
    if args.enhanced:
        result = await container.enhanced_optimizer().optimize_budget_with_tolerance(request)
    else:
        result = await container.optimization_service().optimize_portfolio(request)

    output = result.to_wire()
    if args.report:
        output['optimizationReport'] = generate_optimization_report(result).to_wire()
    return output


def main(argv=None) -> int:
    args = parse_args(argv)

    try:
        config = load_config(Path(args.config)) if args.config else reset_config()
    except (FileNotFoundError, ValueError) as e:
        print(f"Failed to load configuration: {e}", file=sys.stderr)
        return 1

    configure_root_logger(config.logging, stream=sys.stderr)

    try:
        output = asyncio.run(run(args))
    except ValidationError as e:
        logger.error(f"Invalid request: {e}")
        return 2
    except (OSError, json.JSONDecodeError) as e:
        logger.error(f"Cannot read request {args.request}: {e}")
        return 1

    print(json.dumps(output, indent=2))
    return 0


if __name__ == '__main__':
    sys.exit(main())
