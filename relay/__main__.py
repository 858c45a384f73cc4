import uvicorn

from .config import get_settings


def main() -> None:
    # Logging itself is configured by the app's lifespan
    settings = get_settings()
    uvicorn.run("relay.main:app", host=settings.host, port=settings.port, log_level=settings.log_level.lower())


if __name__ == "__main__":
    main()
