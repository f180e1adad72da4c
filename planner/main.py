import argparse
import json
import logging
import sys

from planner.core.app import PlannerApp


def setup_basic_logging():
    """Setup basic stdout logging before config is loaded"""
    root_logger = logging.getLogger()
    if not root_logger.handlers:  # Only add handler if none exists
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - [%(filename)s:%(lineno)d] - %(message)s'
        ))
        root_logger.addHandler(handler)
        root_logger.setLevel(logging.DEBUG)  # Set initial level to DEBUG
        logging.debug("Basic logging initialized")


def main(argv=None) -> int:
    setup_basic_logging()

    parser = argparse.ArgumentParser(description='Prayer-anchored daily planner')
    parser.add_argument('--config', default="config.yaml",
                        help='Path to config file (default: ./config.yaml)')
    parser.add_argument('--once', action='store_true',
                        help='Run both ticks once, print the display snapshot and exit')
    args = parser.parse_args(argv)

    app = PlannerApp(config_path=args.config, watch_config=not args.once)
    if args.once:
        try:
            app.seed_settings_from_config()
            print(json.dumps(app.run_ticks(), indent=2))
        finally:
            app.stop()
        return 0

    app.run()
    return 0


if __name__ == "__main__":
    sys.exit(main())
