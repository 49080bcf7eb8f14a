from __future__ import annotations
import logging

import uvicorn

from faucet.config import settings
from faucet.main import create_app


def main():
    logging.basicConfig(
        level=settings.LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    uvicorn.run(create_app(), host="0.0.0.0", port=settings.PORT)


if __name__ == "__main__":
    main()
