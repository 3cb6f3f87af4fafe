import json
import re

from .models import ColumnMetadata, Dataset

CHAT_SYSTEM_PROMPT = (
    "You are NOVA, a poetic AI BI assistant. Respond with insights about data queries "
    "in a conversational, elegant way. Keep responses concise and actionable."
)

INSIGHTS_SYSTEM_PROMPT = "You are a data analyst providing clear, actionable insights."

CHAT_FALLBACK_RESPONSE = "I apologize, but I couldn't process that query."

MAX_INSIGHTS = 5

_NUMBERING_RE = re.compile(r"^\d+\.\s*")


def _format_columns(columns: list[ColumnMetadata]) -> str:
    return ", ".join(f"{c.column_name} ({c.data_type})" for c in columns)


def build_chat_system_prompt(dataset: Dataset | None, columns: list[ColumnMetadata] | None = None) -> str:
    """目的: チャット用のsystemプロンプトを作る。対象データセットがあれば概要を添える。"""
    if dataset is None:
        return CHAT_SYSTEM_PROMPT

    lines = [
        CHAT_SYSTEM_PROMPT,
        "",
        "The user is asking about this dataset:",
        f"Dataset: {dataset.name}",
        f"Rows: {dataset.row_count}",
    ]
    if columns:
        lines.append(f"Columns: {_format_columns(columns)}")
    lines.append(
        "If a chart would help, include one JSON object in a ```json block with keys "
        '"type" (bar|line|pie|area), "data" (list of objects) and "config".'
    )
    return "\n".join(lines)


def build_insights_prompt(dataset: Dataset, columns: list[ColumnMetadata]) -> str:
    """
    データセット要約と列メタデータからインサイト生成プロンプトを組み立てる。
    - 行データは送らず、列ごとのサンプル値（最大5件）だけを送る
    """
    samples = "\n".join(
        f"{c.column_name}: {json.dumps(c.sample_values or [], ensure_ascii=False)}" for c in columns
    )
    return (
        "Analyze this dataset and generate 3-5 key insights:\n"
        "\n"
        f"Dataset: {dataset.name}\n"
        f"Rows: {dataset.row_count}\n"
        f"Columns: {_format_columns(columns)}\n"
        "\n"
        "Sample values:\n"
        f"{samples}\n"
        "\n"
        "Provide insights about:\n"
        "1. Data distribution patterns\n"
        "2. Potential trends or correlations\n"
        "3. Data quality observations\n"
        "4. Recommended visualizations\n"
        "5. Business implications\n"
        "\n"
        "Format each insight as a separate, concise observation."
    )


def split_insights(text: str, *, limit: int = MAX_INSIGHTS) -> list[tuple[str, str]]:
    """
    LLM応答を (title, content) のリストに分割する。
    - 非空行の先頭 limit 行だけを見る
    - 行頭の "1. " 形式の番号は取り除き、取り除いた結果が空なら捨てる（タイトル番号は詰めない）
    """
    lines = [line for line in (text or "").split("\n") if line.strip()]
    out: list[tuple[str, str]] = []
    for i, line in enumerate(lines[:limit]):
        content = _NUMBERING_RE.sub("", line.strip()).strip()
        if content:
            out.append((f"Insight {i + 1}", content))
    return out
