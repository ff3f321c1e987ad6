#!/usr/bin/env python3
"""
Vectorize - evolve a vector drawing that approximates a raster image.

Main entry point. All run settings live in a YAML file (see
configs/run_config.yaml); a few search parameters can be overridden from
the command line.
"""

import sys
import argparse
from pathlib import Path

# Add current directory to path for imports
sys.path.append(str(Path(__file__).parent))


def main():
    """Main entry point with command-line argument parsing"""
    parser = argparse.ArgumentParser(
        description="Vectorize - hill-climbing raster to vector approximation",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python3 vectorize_cli.py configs/run_config.yaml              # Run with the YAML settings
  python3 vectorize_cli.py configs/run_config.yaml --seed 7     # Reproducible run
  python3 vectorize_cli.py configs/run_config.yaml --workers 4  # Fixed worker pool size
  python3 vectorize_cli.py configs/run_config.yaml --check      # Validate config only
        """
    )

    parser.add_argument(
        'config',
        help='Run configuration YAML file'
    )

    parser.add_argument(
        '--seed', '-s',
        type=int,
        metavar='N',
        help='Override search.rng_seed'
    )

    parser.add_argument(
        '--max-rounds', '-r',
        type=int,
        metavar='N',
        help='Override search.max_rounds'
    )

    parser.add_argument(
        '--workers', '-w',
        type=int,
        metavar='N',
        help='Override search.workers (0 = CPU count)'
    )

    parser.add_argument(
        '--check',
        action='store_true',
        help='Validate the configuration and exit'
    )

    args = parser.parse_args()

    overrides = {
        'rng_seed': args.seed,
        'max_rounds': args.max_rounds,
        'workers': args.workers,
    }
    overrides = {k: v for k, v in overrides.items() if v is not None}

    try:
        from vector_evo.cli import run_from_config
        run_from_config(args.config, overrides=overrides, validate_only=args.check)

    except KeyboardInterrupt:
        print("\nOperation cancelled by user.")
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
