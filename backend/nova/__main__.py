import os

import uvicorn


def main() -> None:
    """目的: `python -m nova` / `nova-serve` でAPIサーバーを起動する。"""
    uvicorn.run(
        "nova.main:app",
        host=os.getenv("HOST", "127.0.0.1"),
        port=int(os.getenv("PORT", "8000")),
    )


if __name__ == "__main__":
    main()
