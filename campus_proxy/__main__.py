"""Serve the proxy with uvicorn: ``python -m campus_proxy`` or ``campus-proxy``."""

from __future__ import annotations

import argparse

import uvicorn

APP_PATH = "campus_proxy.main:app"


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run the campus Google proxy.")
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    parser.add_argument("--reload", action="store_true", help="Restart on code changes.")
    return parser


def main(argv: list[str] | None = None) -> None:
    args = _build_parser().parse_args(argv)
    uvicorn.run(APP_PATH, host=args.host, port=args.port, reload=args.reload)


if __name__ == "__main__":  # pragma: no cover - module entry point
    main()
