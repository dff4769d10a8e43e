"""Run the circuit session API with uvicorn.

Run with:  python3 serve.py
"""

from __future__ import annotations

import os

import uvicorn

from workout_core.config import get_settings


def main() -> None:
    settings = get_settings()
    uvicorn.run(
        "api.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
        log_level=settings.log_level.lower(),
        reload=settings.is_dev and os.getenv("RELOAD", "false").lower() == "true",
    )


if __name__ == "__main__":
    main()
