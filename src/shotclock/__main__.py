import logging

import uvicorn

from shotclock.config import settings


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run("shotclock.server:app", host=settings.HOST, port=settings.PORT)


if __name__ == "__main__":
    main()
