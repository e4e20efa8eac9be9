"""Launch the gateflow FastAPI server."""

import logging

import uvicorn

from gateflow import Settings


def main():
    settings = Settings.from_env()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )
    uvicorn.run("gateflow.server:app", host="0.0.0.0", port=8000, reload=True)


if __name__ == "__main__":
    main()
