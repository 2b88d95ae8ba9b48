from __future__ import annotations

import uvicorn

from sheet_datasets.api.router import create_app
from sheet_datasets.utils.config import get_server_address
from sheet_datasets.utils.logging import configure_logging


def run() -> None:
    configure_logging()
    host, port = get_server_address()
    uvicorn.run(create_app(), host=host, port=port)


if __name__ == "__main__":
    run()
