"""
Run the auth service with uvicorn: `python -m tour_platform.tour_platform.auth_service`.
"""
import uvicorn

from .config import settings
from .main import app


def main():
    uvicorn.run(app, host=settings.HOST, port=settings.PORT, log_level=settings.LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
