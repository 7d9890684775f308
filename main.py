"""
Entry point for the WordPress to static content migration.

Usage::

    python main.py                        # fetch, media, plan-capture, integrate
    python main.py fetch media            # only the named stages, in that order
    python main.py integrate --config path/to/config.json
"""

import argparse
import sys

from wp_static_migrator.config import DEFAULT_CONFIG_FILE, load_config
from wp_static_migrator.pipeline import DEFAULT_STAGES, STAGES, PipelineOrchestrator, StageContext, build_stages
from wp_static_migrator.utils.errors import ConfigError
from wp_static_migrator.utils.logger import MigrationLogger


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description="Migrate a WordPress site's content to a static content store.")
    parser.add_argument(
        "stages",
        nargs="*",
        metavar="STAGE",
        help=f"Stages to run, in order ({', '.join(STAGES)}). Default: {', '.join(DEFAULT_STAGES)}.",
    )
    parser.add_argument("--config", default=DEFAULT_CONFIG_FILE, help="Path to the JSON configuration file.")
    parser.add_argument("--verbose", action="store_true", help="Print DEBUG lines as well.")
    return parser.parse_args(argv)


def main(argv=None) -> int:
    """
    Main function to run the migration pipeline.

    Returns the process exit status: 0 when every stage completed, 1 otherwise.
    """
    args = parse_args(argv)
    try:
        config = load_config(config_file=args.config)
        stages = build_stages(args.stages)
    except ConfigError as e:
        MigrationLogger().error(str(e))
        return 1

    if args.verbose:
        config.pipeline.verbose = True

    context = StageContext.from_config(config)
    context.logger.info(f"Source site: {config.site_url}")
    ok = PipelineOrchestrator(context).run(stages)
    return 0 if ok else 1


if __name__ == "__main__":
    sys.exit(main())
