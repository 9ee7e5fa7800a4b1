"""
Run the admin backend with uvicorn: ``python -m admin_backend``.
"""

import uvicorn

from admin_backend.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "admin_backend.app:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    main()
