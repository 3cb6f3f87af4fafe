import math

from dateutil import parser as dateparser

NUMERIC = "numeric"
DATE = "date"
TEXT = "text"

SAMPLE_LIMIT = 5


def is_numeric(value: str) -> bool:
    """目的: 前後空白・小数・指数表記を許容して数値として読めるか判定する（空文字は数値扱いしない）。"""
    s = value.strip()
    if not s or "_" in s:
        return False
    try:
        number = float(s)
    except ValueError:
        return False
    return not math.isnan(number)


def is_date(value: str) -> bool:
    """目的: 日付文字列として解釈できるかを寛容に判定する。"""
    s = value.strip()
    if not s:
        return False
    try:
        dateparser.parse(s)
    except (ValueError, OverflowError):
        return False
    return True


def infer_data_type(samples: list[str]) -> str:
    """
    サンプル値から列の型を numeric / date / text のいずれかに決める。
    - 全件が数値なら numeric、全件が日付なら date、それ以外は text（部分一致のスコアリングはしない）
    - サンプルが空なら text
    """
    if not samples:
        return TEXT
    if all(is_numeric(v) for v in samples):
        return NUMERIC
    if all(is_date(v) for v in samples):
        return DATE
    return TEXT


def sample_column(rows: list[list[str]], index: int, limit: int = SAMPLE_LIMIT) -> list[str]:
    """目的: 行順に列indexの値を集め、trim後に空でない値を最大limit件返す。"""
    samples: list[str] = []
    for row in rows:
        if len(samples) >= limit:
            break
        if index >= len(row):
            # 末尾フィールドが欠けた短い行
            continue
        value = row[index].strip()
        if value:
            samples.append(value)
    return samples
