import os

import uvicorn

from homebank_bridge.app import app
from homebank_bridge.core import settings
from homebank_bridge.logger import get_logging_config

__all__ = ["app", "run"]


def run() -> None:
    settings.ensure_dir(settings.get_data_dir())
    uvicorn.run(
        app,
        host=os.getenv("HOST", "0.0.0.0"),
        port=settings.get_env_int("PORT", 8000, min_value=1),
        log_config=get_logging_config(),
    )


if __name__ == "__main__":
    run()
