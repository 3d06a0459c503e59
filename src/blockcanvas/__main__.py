"""cli entrypoint for blockcanvas."""

import argparse
import logging
from pathlib import Path

from .core.constants import DEFAULT_AUTOSAVE_INTERVAL, get_data_dir


def main():
    parser = argparse.ArgumentParser(
        description="blockcanvas - an infinite canvas of composable programs"
    )
    parser.add_argument(
        "--data-dir",
        "-d",
        help="storage directory (default: ~/.blockcanvas)",
    )
    parser.add_argument(
        "--autosave-interval",
        type=float,
        default=DEFAULT_AUTOSAVE_INTERVAL,
        help=f"auto-save interval in seconds (default: {DEFAULT_AUTOSAVE_INTERVAL})",
    )
    parser.add_argument(
        "--no-autosave",
        action="store_true",
        help="disable auto-save",
    )
    parser.add_argument(
        "--log-level",
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="logging level (default: WARNING)",
    )

    sub = parser.add_subparsers(dest="command")
    serve = sub.add_parser("serve", help="run the rest api instead of the terminal ui")
    serve.add_argument("--host", default="0.0.0.0", help="host to bind")
    serve.add_argument("--port", "-p", type=int, default=8000, help="port to bind")

    args = parser.parse_args()
    # the terminal ui owns the screen, so it logs to a file instead
    log_file = None
    if args.command != "serve":
        log_file = Path(args.data_dir) if args.data_dir else get_data_dir()
        log_file.mkdir(parents=True, exist_ok=True)
        log_file = log_file / "blockcanvas.log"
    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        filename=log_file,
    )
    autosave = 0 if args.no_autosave else args.autosave_interval

    if args.command == "serve":
        from .api.server import serve as run_server

        run_server(
            host=args.host,
            port=args.port,
            data_dir=args.data_dir,
            autosave_interval=autosave,
        )
        return

    from .tui.app import run

    run(data_dir=args.data_dir, autosave_interval=autosave)


if __name__ == "__main__":
    main()
