from __future__ import annotations

import uvicorn

from api_service.config import get_settings


def main() -> None:
    settings = get_settings()
    # Logging is configured by the app's startup hook; keep uvicorn from
    # installing its own handlers first.
    uvicorn.run("api_service.main:app", host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
