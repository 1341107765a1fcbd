# notes_backend/__main__.py
import uvicorn

from notes_backend.config import get_settings
from notes_backend.main import create_app


def run():
    settings = get_settings()
    uvicorn.run(create_app(settings), host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
