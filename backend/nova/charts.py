import copy
import json
import re
from dataclasses import dataclass

CHART_TYPES = ("bar", "line", "pie", "area")

PARSED = "parsed"
FALLBACK = "fallback"
REJECTED = "rejected"

# パース不能なチャート指定が来たときに代わりに返す既定チャート
DEFAULT_CHART: dict = {
    "type": "bar",
    "data": [
        {"name": "Q1", "value": 400},
        {"name": "Q2", "value": 300},
        {"name": "Q3", "value": 500},
        {"name": "Q4", "value": 450},
    ],
    "config": {"xKey": "name", "yKey": "value"},
}

_FENCED_RE = re.compile(r"```(?:json)?\s*(\{.*?\})\s*```", re.DOTALL | re.IGNORECASE)


@dataclass(frozen=True)
class ChartParse:
    """LLM応答からのチャート抽出結果。kind は parsed / fallback / rejected のいずれか。"""

    kind: str
    chart: dict | None = None
    text: str = ""
    reason: str | None = None


def _looks_like_chart(candidate: str) -> bool:
    return '"type"' in candidate and '"data"' in candidate


def _find_candidate(text: str) -> tuple[str, str] | None:
    """目的: 応答テキスト中のチャート候補（JSON文字列）と、それを除いた本文を返す。"""
    m = _FENCED_RE.search(text)
    if m:
        remaining = (text[: m.start()] + text[m.end():]).strip()
        return m.group(1).strip(), remaining

    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        candidate = text[start : end + 1]
        # 素の {...} はチャートらしいキーを含むときだけ候補にする
        if _looks_like_chart(candidate):
            remaining = (text[:start] + text[end + 1 :]).strip()
            return candidate, remaining
    return None


def validate_chart(obj) -> dict | None:
    if not isinstance(obj, dict):
        return None
    chart = obj.get("chart") if isinstance(obj.get("chart"), dict) else obj
    chart_type = chart.get("type")
    data = chart.get("data")
    if chart_type not in CHART_TYPES or not isinstance(data, list):
        return None
    config = chart.get("config")
    return {
        "type": chart_type,
        "data": data,
        "config": config if isinstance(config, dict) else {},
    }


def parse_chart(text: str) -> ChartParse:
    """
    LLMの自由文からチャート指定を取り出す。
    - 妥当なチャートJSON → parsed（本文からは取り除く）
    - type/data を含むがJSONとして壊れている → fallback（DEFAULT_CHART を返す）
    - 候補なし / 形が不正 → rejected（チャートなし）
    """
    text = text or ""
    found = _find_candidate(text)
    if found is None:
        return ChartParse(kind=REJECTED, text=text, reason="no chart block")

    candidate, remaining = found
    try:
        obj = json.loads(candidate)
    except ValueError:
        if not _looks_like_chart(candidate):
            return ChartParse(kind=REJECTED, text=text, reason="invalid json without chart keys")
        return ChartParse(kind=FALLBACK, chart=copy.deepcopy(DEFAULT_CHART), text=remaining, reason="invalid json")

    chart = validate_chart(obj)
    if chart is None:
        return ChartParse(kind=REJECTED, text=text, reason="unsupported chart shape")
    return ChartParse(kind=PARSED, chart=chart, text=remaining)
