import logging
import os
import sys


def setup_logging(level: str | int | None = None) -> None:
    """目的: ルートロガーを共通フォーマットで設定する（複数回呼んでも重複しない）。"""
    if level is None:
        level = os.getenv("LOG_LEVEL", "INFO").strip().upper() or "INFO"

    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True,
    )
