"""Run the API server with ``python -m pdfchat``."""
from __future__ import annotations

import uvicorn

from pdfchat.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run("pdfchat.main:app", host="0.0.0.0", port=settings.port)


if __name__ == "__main__":
    main()
