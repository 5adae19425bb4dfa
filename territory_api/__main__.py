"""
Serve the API with uvicorn on API_PORT.

    python -m territory_api
"""

import uvicorn

from territory_api.core.settings import get_app_settings


# PUBLIC_INTERFACE
def main() -> None:
    settings = get_app_settings()
    uvicorn.run(
        "territory_api.api.main:app",
        host="0.0.0.0",
        port=settings.API_PORT,
        log_level=settings.LOG_LEVEL.lower(),
        proxy_headers=True,
    )


if __name__ == "__main__":
    main()
