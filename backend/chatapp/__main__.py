"""Run the backend with uvicorn: ``python -m chatapp``."""
import uvicorn

from chatapp.config import get_config


def main() -> None:
    config = get_config()
    uvicorn.run(
        "chatapp.main:app",
        host=config.server.host,
        port=config.server.port,
        log_level=config.logging.level.lower(),
    )


if __name__ == "__main__":
    main()
