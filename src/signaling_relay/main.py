from __future__ import annotations

import argparse
import logging

from .config import RelaySettings
from .logging import configure_logging

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="WebRTC signaling relay for edge device camera streams")
    parser.add_argument("--print-config", action="store_true", help="Print resolved configuration and exit.")
    parser.add_argument("--serve", action="store_true", help="Start the HTTP + Socket.IO server.")
    return parser


def run(argv: list[str] | None = None, cfg: RelaySettings | None = None) -> int:
    """
    Signaling relay entrypoint.
    """
    try:
        args = build_parser().parse_args(argv)

        cfg = cfg or RelaySettings()
        configure_logging(cfg.log_level)

        logger.info("Signaling relay starting")
        logger.info(
            "Resolved config: listen=%s:%s origin=%s session_timeout=%ss",
            cfg.http_host, cfg.http_port, cfg.frontend_url, cfg.session_timeout_sec,
        )

        if args.print_config:
            print(cfg.model_dump())
            return 0

        if args.serve:
            import uvicorn
            from .app import create_asgi_app

            app = create_asgi_app(cfg)

            logger.info("Listening on http://%s:%s", cfg.http_host, cfg.http_port)
            uvicorn.run(
                app,
                host=cfg.http_host,
                port=cfg.http_port,
                log_level=cfg.log_level.lower(),
            )
            return 0

        logger.info("Nothing to do. Use --print-config or --serve.")
        return 0

    except Exception:
        logger.exception("Signaling relay crashed due to an unexpected error")
        if cfg is not None and (cfg.debug or cfg.log_level.upper() == "DEBUG"):
            raise
        return 1


if __name__ == "__main__":
    raise SystemExit(run())
