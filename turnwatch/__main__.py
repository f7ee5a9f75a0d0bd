"""Entry point: ``python -m turnwatch --config turnwatch.yml``."""
import argparse
import logging
import os
import sys

from dotenv import load_dotenv


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(prog="turnwatch", description="Turn alerts for Terraforming Mars games")
    parser.add_argument("-c", "--config", help="path to the YAML configuration file")
    args = parser.parse_args(argv)

    load_dotenv()
    if args.config:
        os.environ["TURNWATCH_CONFIG"] = args.config

    from turnwatch.errors import ConfigError

    try:
        from turnwatch.config import settings
    except ConfigError as exc:
        print(exc.message, file=sys.stderr)
        return 2

    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    import uvicorn

    from turnwatch.main import create_app

    uvicorn.run(create_app(), host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())
    return 0


if __name__ == "__main__":
    sys.exit(main())
