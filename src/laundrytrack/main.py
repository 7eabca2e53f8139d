from __future__ import annotations

import asyncio
import os
import sys

from .cli import run_cli
from .config import ConfigError, configure_logging, load_config
from .errors import PersistenceError
from .wiring import services_from_config


def main(argv: list[str] | None = None) -> int:
    argv = sys.argv[1:] if argv is None else argv
    path = argv[0] if argv else os.environ.get("LAUNDRYTRACK_CONFIG", "config.toml")
    try:
        cfg = load_config(path)
        configure_logging(cfg.log_level)
        user_id = cfg.auth.cli_user_id or cfg.auth.bootstrap_admin
        if not user_id:
            raise ConfigError("Set [auth] cli_user_id to the user the CLI acts as.")
        asyncio.run(run_cli(services_from_config(cfg), user_id))
        return 0
    except ConfigError as e:
        print(f"[CONFIG ERROR] {e}")
        return 2
    except PersistenceError as e:
        print(f"[DB ERROR] {e}")
        return 3
    except KeyboardInterrupt:
        print("\nInterrupted.")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
