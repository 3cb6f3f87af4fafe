import logging
import os
from datetime import datetime, timedelta, timezone
from typing import Any

from fastapi import Depends, FastAPI, File, Form, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from pydantic import AliasChoices, BaseModel, Field
from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

from .analysis import (
    CHAT_FALLBACK_RESPONSE,
    INSIGHTS_SYSTEM_PROMPT,
    build_chat_system_prompt,
    build_insights_prompt,
    split_insights,
)
from .auth import AuthConfig, IdentityResolver, build_identity_resolver
from .charts import CHART_TYPES, parse_chart
from .db import engine, getDb
from .errors import (
    InvalidInputError,
    MetadataWriteError,
    NotFoundError,
    NovaError,
    PayloadTooLargeError,
    UnauthorizedError,
)
from .ingestion import SqlMetadataStore, ingest_csv
from .llm import LLMClient, LLMConfig, LLMError, build_llm_client
from .logging_config import setup_logging
from .models import Base, Board, Chart, ColumnMetadata, Dataset, Insight, Message, Profile
from .storage import ContentStore, StorageConfig, build_content_store

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(title="NOVA Backend", version="0.1.0")

# CORS（ブラウザアクセス向け）
# 例: "http://localhost:8080,http://127.0.0.1:8080" のようにカンマ区切り
originsEnv = os.getenv("CORS_ALLOW_ORIGINS", "http://localhost:8080")
allowOrigins = [o.strip() for o in originsEnv.split(",") if o.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowOrigins,
    allow_credentials=False,
    allow_methods=["*"],
    allow_headers=["*"],
)

# 受け口で弾くアップロード上限（取り込み処理自体はサイズを見ない）
MAX_UPLOAD_BYTES = int(os.getenv("MAX_UPLOAD_BYTES", str(50 * 1024 * 1024)))

# PoC：起動時にテーブルが無ければ作る（本番はAlembic）
Base.metadata.create_all(bind=engine)

# LLM例外コード → HTTPステータス
LLM_ERROR_STATUS = {
    "LLM_TIMEOUT": 504,
    "LLM_AUTH_ERROR": 502,
    "LLM_RATE_LIMIT": 429,
    "LLM_PAYMENT_REQUIRED": 402,
    "LLM_INPUT_TOO_LARGE": 413,
    "LLM_PROVIDER_ERROR": 502,
}


@app.exception_handler(NovaError)
async def handleNovaError(request: Request, exc: NovaError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s (%s)", request.method, request.url.path, exc.message, exc.code)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(LLMError)
async def handleLlmError(request: Request, exc: LLMError):
    statusCode = LLM_ERROR_STATUS.get(exc.code, 502)
    logger.error("LLM error on %s: %s (%s)", request.url.path, exc, exc.code)
    return JSONResponse(
        status_code=statusCode,
        content={"error": str(exc), "code": exc.code, "retryable": exc.retryable},
    )


@app.exception_handler(StarletteHTTPException)
async def handleHttpException(request: Request, exc: StarletteHTTPException):
    return JSONResponse(status_code=exc.status_code, content={"error": str(exc.detail)})


@app.exception_handler(RequestValidationError)
async def handleValidationError(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    message = "Invalid request"
    if errors:
        loc = ".".join(str(p) for p in errors[0].get("loc", ()) if p != "body")
        message = f"Invalid request: {loc} {errors[0].get('msg', '')}".strip()
    return JSONResponse(status_code=400, content={"error": message})


# --- 依存（テストでは app.dependency_overrides で差し替える） ---

bearerScheme = HTTPBearer(auto_error=False)


def getLlmClient() -> LLMClient:
    return build_llm_client(LLMConfig.from_env())


def getContentStore() -> ContentStore:
    return build_content_store(StorageConfig.from_env())


def getIdentityResolver() -> IdentityResolver:
    return build_identity_resolver(AuthConfig.from_env())


def getCurrentUserId(
    credentials: HTTPAuthorizationCredentials | None = Depends(bearerScheme),
    resolver: IdentityResolver = Depends(getIdentityResolver),
) -> str:
    """目的: Bearerトークンからユーザーを解決する。以降の処理はこのIDを明示的に受け取る。"""
    if credentials is None or not credentials.credentials:
        raise UnauthorizedError("Unauthorized")
    return resolver.resolve(credentials.credentials)


# --- リクエストボディ ---

class QueryRequest(BaseModel):
    message: str
    data_source_id: str | None = Field(
        default=None, validation_alias=AliasChoices("data_source_id", "dataSourceId")
    )


class InsightsRequest(BaseModel):
    data_source_id: str = Field(validation_alias=AliasChoices("data_source_id", "dataSourceId"))


class BoardCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    description: str | None = None


class LayoutItem(BaseModel):
    i: str
    x: int = 0
    y: int = 0
    w: int = 6
    h: int = 4


class LayoutUpdateRequest(BaseModel):
    layout: list[LayoutItem]


class ChartCreateRequest(BaseModel):
    title: str = Field(min_length=1)
    chart_type: str
    config: dict[str, Any]
    data_source_id: str | None = None
    query_text: str | None = None


class ProfileUpdateRequest(BaseModel):
    full_name: str | None = None
    avatar_url: str | None = None


def _getOwnedDataset(db: Session, datasetId: str, userId: str) -> Dataset:
    ds = db.get(Dataset, datasetId)
    if ds is None or ds.user_id != userId:
        raise NotFoundError("Data source not found")
    return ds


def _listColumns(db: Session, datasetId: str) -> list[ColumnMetadata]:
    stmt = select(ColumnMetadata).where(ColumnMetadata.data_source_id == datasetId)
    return list(db.scalars(stmt))


def _commitOr500(db: Session, what: str) -> None:
    try:
        db.commit()
    except SQLAlchemyError as e:
        db.rollback()
        raise MetadataWriteError(f"Failed to save {what}: {type(e).__name__}") from e


@app.get("/health")
def health():
    """目的: 稼働確認用のヘルスチェック結果を返す。"""
    return {"status": "ok"}


# --- データセット ---

@app.post("/upload")
@app.post("/datasets/upload")
def upload_dataset(
    file: UploadFile | None = File(None),
    fileName: str | None = Form(None),
    userId: str = Depends(getCurrentUserId),
    contentStore: ContentStore = Depends(getContentStore),
    db: Session = Depends(getDb),
):
    """目的: CSVを受け取り、生ファイルとデータセット/列メタデータを保存して {data: Dataset} を返す。"""
    if file is None:
        raise InvalidInputError("No file provided")

    raw = file.file.read()
    if len(raw) > MAX_UPLOAD_BYTES:
        raise PayloadTooLargeError(f"File exceeds {MAX_UPLOAD_BYTES} bytes")

    name = (fileName or file.filename or "").strip() or "upload.csv"
    dataset = ingest_csv(
        raw,
        name,
        userId,
        content_store=contentStore,
        metadata_store=SqlMetadataStore(db),
    )
    return {"data": dataset.to_dict()}


@app.get("/datasets")
def list_datasets(userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    """目的: ログインユーザーのデータセットを新しい順に返す（Explorer一覧用）。"""
    stmt = select(Dataset).where(Dataset.user_id == userId).order_by(Dataset.created_at.desc())
    return {"data": [ds.to_dict() for ds in db.scalars(stmt)]}


@app.get("/datasets/{dataset_id}")
def get_dataset(dataset_id: str, userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    """目的: データセット要約と列メタデータを返す。"""
    ds = _getOwnedDataset(db, dataset_id, userId)
    columns = _listColumns(db, ds.id)
    return {"data": ds.to_dict(), "columns": [c.to_dict() for c in columns]}


@app.delete("/datasets/{dataset_id}", status_code=204)
def delete_dataset(dataset_id: str, userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    """目的: データセットを削除する（列メタデータはCASCADE、保存済みファイルは残す）。"""
    ds = _getOwnedDataset(db, dataset_id, userId)
    db.delete(ds)
    _commitOr500(db, "dataset deletion")
    return Response(status_code=204)


# --- チャット ---

@app.post("/query")
def query(
    body: QueryRequest,
    userId: str = Depends(getCurrentUserId),
    llm: LLMClient = Depends(getLlmClient),
    db: Session = Depends(getDb),
):
    """目的: ユーザーの質問をLLMに渡し、応答テキストと（あれば）チャート指定を返す。"""
    message = body.message.strip()
    if not message:
        raise InvalidInputError("Message is required")

    dataset = None
    columns: list[ColumnMetadata] = []
    if body.data_source_id:
        dataset = _getOwnedDataset(db, body.data_source_id, userId)
        columns = _listColumns(db, dataset.id)

    completion = llm.generate(message, system=build_chat_system_prompt(dataset, columns))
    if not completion.strip():
        completion = CHAT_FALLBACK_RESPONSE

    parsed = parse_chart(completion)
    responseText = parsed.text.strip() or completion.strip()
    metadata: dict[str, Any] = {"chart_status": parsed.kind}

    datasetId = dataset.id if dataset is not None else None
    # 同じcommitで保存する2件は、作成順に並ぶよう assistant を必ず後の時刻にする
    askedAt = datetime.now(timezone.utc)
    db.add(Message(user_id=userId, data_source_id=datasetId, role="user", content=message, created_at=askedAt))
    db.add(
        Message(
            user_id=userId,
            data_source_id=datasetId,
            role="assistant",
            content=responseText,
            metadata_={"chart_status": parsed.kind, "chart": parsed.chart},
            created_at=askedAt + timedelta(microseconds=1),
        )
    )
    try:
        db.commit()
    except SQLAlchemyError as e:
        # 会話履歴の保存失敗は応答自体を失敗にしない
        db.rollback()
        logger.warning("Message save failed for user_id=%s: %s", userId, type(e).__name__)

    out: dict[str, Any] = {"response": responseText, "metadata": metadata}
    if parsed.chart is not None:
        out["chart"] = parsed.chart
    return out


@app.get("/messages")
def list_messages(
    data_source_id: str | None = None,
    userId: str = Depends(getCurrentUserId),
    db: Session = Depends(getDb),
):
    """目的: 会話履歴を作成順に返す。data_source_id 指定時はそのデータセットの会話だけ。"""
    stmt = select(Message).where(Message.user_id == userId)
    if data_source_id:
        stmt = stmt.where(Message.data_source_id == data_source_id)
    stmt = stmt.order_by(Message.created_at.asc())
    return {"data": [m.to_dict() for m in db.scalars(stmt)]}


# --- インサイト ---

@app.post("/insights")
def generate_insights(
    body: InsightsRequest,
    userId: str = Depends(getCurrentUserId),
    llm: LLMClient = Depends(getLlmClient),
    db: Session = Depends(getDb),
):
    """目的: データセットの列メタデータからLLMでインサイトを生成し、保存して返す。"""
    ds = _getOwnedDataset(db, body.data_source_id, userId)
    columns = _listColumns(db, ds.id)

    completion = llm.generate(build_insights_prompt(ds, columns), system=INSIGHTS_SYSTEM_PROMPT)

    insights = [
        Insight(
            user_id=userId,
            data_source_id=ds.id,
            title=title,
            content=content,
            insight_type="auto",
        )
        for title, content in split_insights(completion)
    ]
    db.add_all(insights)
    _commitOr500(db, "insights")
    return {"insights": [i.to_dict() for i in insights]}


@app.get("/insights")
def list_insights(userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    """目的: ログインユーザーのインサイトを新しい順に返す。"""
    stmt = select(Insight).where(Insight.user_id == userId).order_by(Insight.created_at.desc())
    return {"data": [i.to_dict() for i in db.scalars(stmt)]}


# --- ボード / チャート ---

def _getOwnedBoard(db: Session, boardId: str, userId: str) -> Board:
    board = db.get(Board, boardId)
    if board is None or board.user_id != userId:
        raise NotFoundError("Board not found")
    return board


@app.get("/boards")
def list_boards(userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    stmt = select(Board).where(Board.user_id == userId).order_by(Board.created_at.desc())
    return {"data": [b.to_dict() for b in db.scalars(stmt)]}


@app.post("/boards", status_code=201)
def create_board(body: BoardCreateRequest, userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    board = Board(user_id=userId, title=body.title, description=body.description, layout=[])
    db.add(board)
    _commitOr500(db, "board")
    return {"data": board.to_dict()}


@app.get("/boards/{board_id}")
def get_board(board_id: str, userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    return {"data": _getOwnedBoard(db, board_id, userId).to_dict()}


@app.put("/boards/{board_id}/layout")
def save_board_layout(
    board_id: str,
    body: LayoutUpdateRequest,
    userId: str = Depends(getCurrentUserId),
    db: Session = Depends(getDb),
):
    """目的: ボードのグリッド配置（i/x/y/w/h の配列）をそのまま保存する。"""
    board = _getOwnedBoard(db, board_id, userId)
    board.layout = [item.model_dump() for item in body.layout]
    _commitOr500(db, "layout")
    return {"data": board.to_dict()}


@app.get("/charts")
def list_charts(userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    """目的: ボードに並べるチャートを最大10件返す。"""
    stmt = select(Chart).where(Chart.user_id == userId).order_by(Chart.created_at.desc()).limit(10)
    return {"data": [c.to_dict() for c in db.scalars(stmt)]}


@app.post("/charts", status_code=201)
def create_chart(body: ChartCreateRequest, userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    if body.chart_type not in CHART_TYPES:
        raise InvalidInputError(f"Unsupported chart_type: {body.chart_type}")
    if body.data_source_id:
        _getOwnedDataset(db, body.data_source_id, userId)

    chart = Chart(
        user_id=userId,
        data_source_id=body.data_source_id,
        title=body.title,
        chart_type=body.chart_type,
        config=body.config,
        query_text=body.query_text,
    )
    db.add(chart)
    _commitOr500(db, "chart")
    return {"data": chart.to_dict()}


# --- プロフィール ---

@app.get("/profile")
def get_profile(userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    profile = db.get(Profile, userId)
    if profile is None:
        raise NotFoundError("Profile not found")
    return {"data": profile.to_dict()}


@app.put("/profile")
def update_profile(body: ProfileUpdateRequest, userId: str = Depends(getCurrentUserId), db: Session = Depends(getDb)):
    """目的: 表示名などを更新する。プロフィールが無ければ作る。"""
    profile = db.get(Profile, userId)
    if profile is None:
        profile = Profile(id=userId)
        db.add(profile)
    if body.full_name is not None:
        profile.full_name = body.full_name
    if body.avatar_url is not None:
        profile.avatar_url = body.avatar_url
    _commitOr500(db, "profile")
    return {"data": profile.to_dict()}
