"""Application entry point."""

import uvicorn

from src.weather_summary_api.core.config import settings


def main():
    """Serve the weather summary API with uvicorn."""
    uvicorn.run(
        "src.weather_summary_api.app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=False,
        workers=1,  # Caches and rate limiters are per process
        log_level=settings.LOG_LEVEL.lower(),
    )


if __name__ == "__main__":
    main()
