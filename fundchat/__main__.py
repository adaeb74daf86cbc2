# fundchat/__main__.py
"""
Entry point for running the fundchat node as a module:
    python -m fundchat [--host 0.0.0.0] [--port 8080] [--config fundchat_config.yaml]
                       [--data-dir ./data]
Env toggles:
  FUNDCHAT_CONFIG=...       -> YAML config file
  FUNDCHAT_DATA_DIR=...     -> collection snapshot directory
  FUNDCHAT_LOG_LEVEL=DEBUG  -> log verbosity
"""

from __future__ import annotations

import argparse
import logging

import uvicorn

from .config import configure_logging, get_bind_host, get_bind_port, load_config
from .fundchat_api import create_app

log = logging.getLogger("fundchat")


def parse_args(argv=None):
    p = argparse.ArgumentParser(
        prog="fundchat-node",
        description="Run the fundchat ledger + chat API",
    )
    p.add_argument("--config", default=None, help="Path to YAML config")
    p.add_argument("--host", default=None, help="Bind address (overrides config)")
    p.add_argument("--port", type=int, default=None, help="Port (overrides config)")
    p.add_argument("--data-dir", default=None, help="Collection snapshot directory (overrides config)")
    return p.parse_args(argv)


def main(argv=None):
    args = parse_args(argv)

    cfg = load_config(args.config)
    if args.data_dir:
        cfg["storage"]["data_dir"] = args.data_dir
    configure_logging(cfg)

    host = args.host or get_bind_host(cfg)
    port = args.port or get_bind_port(cfg)

    app = create_app(cfg)
    log.info("serving on http://%s:%d", host, port)
    uvicorn.run(app, host=host, port=port, log_config=None)
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
