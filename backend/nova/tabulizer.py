"""
CSVテキストをヘッダー行とデータ行に分割する。

PoCの割り切り:
- 区切りはカンマの単純split（クォート・エスケープは非対応）
- ヘッダー名の重複は許容する（列は位置で扱う）
- 行ごとのフィールド数は検証しない（短い行・長い行もそのまま通す）
"""
from dataclasses import dataclass, field


@dataclass(frozen=True)
class Table:
    headers: list[str] = field(default_factory=list)
    rows: list[list[str]] = field(default_factory=list)

    @property
    def row_count(self) -> int:
        return len(self.rows)

    @property
    def column_count(self) -> int:
        return len(self.headers)


def split_lines(text: str) -> list[str]:
    """目的: 改行で分割し、空行・空白のみの行を取り除く。"""
    return [line for line in text.split("\n") if line.strip()]


def tabulize(text: str) -> Table:
    """目的: 先頭の非空行をヘッダー、残りをデータ行として分割する。"""
    lines = split_lines(text)
    if not lines:
        return Table()

    headers = [h.strip() for h in lines[0].split(",")]
    rows = [line.split(",") for line in lines[1:]]
    return Table(headers=headers, rows=rows)
