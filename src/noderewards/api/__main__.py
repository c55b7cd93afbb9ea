# src/noderewards/api/__main__.py
from __future__ import annotations

import uvicorn

from noderewards.env import load_dotenv_if_present


def main() -> None:
    # .env must be loaded before any config is read.
    load_dotenv_if_present()

    from noderewards.api.app import create_app
    from noderewards.runtime.config import load_service_config

    cfg = load_service_config()
    uvicorn.run(create_app(cfg=cfg), host=cfg.api_host, port=int(cfg.api_port), log_level=cfg.log_level.lower())


if __name__ == "__main__":
    main()
