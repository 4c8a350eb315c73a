"""Run the triage API with uvicorn: ``python -m shifa``."""

import uvicorn

from shifa.core.config import settings


def main() -> None:
    uvicorn.run(
        "shifa.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=settings.is_dev,
    )


if __name__ == "__main__":
    main()
