"""
CSVアップロードの取り込み処理。

生バイト列の保存 → ヘッダー/行の分割 → データセット要約の保存 → 列ごとの型推定 → 列メタデータの一括保存、
を1回の呼び出しで直列に行う（リトライ・ロールバックなし）。

整合性の割り切り:
- データセット保存に失敗しても、保存済みの生ファイルは消さない（孤児ファイルになる）
- 列メタデータの保存失敗はログのみで、データセットは成功として返す
"""
import logging
import time
import uuid
from typing import Callable, Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ColumnMetadataWriteError, InvalidInputError, MetadataWriteError, StorageWriteError
from .inference import infer_data_type, sample_column
from .models import ColumnMetadata, Dataset
from .storage import ContentStore
from .tabulizer import Table, tabulize

logger = logging.getLogger(__name__)

CSV_CONTENT_TYPE = "text/csv"


class MetadataStore(Protocol):
    def insert_dataset(self, dataset: Dataset) -> Dataset:  # pragma: no cover
        """1件保存して保存後のレコードを返す。失敗時は MetadataWriteError。"""

    def insert_columns(self, columns: list[ColumnMetadata]) -> None:  # pragma: no cover
        """一括保存する。失敗時は ColumnMetadataWriteError。"""


class SqlMetadataStore:
    """SQLAlchemyセッションに保存する実装。1回の insert ごとに commit する。"""

    def __init__(self, db: Session):
        self.db = db

    def insert_dataset(self, dataset: Dataset) -> Dataset:
        try:
            self.db.add(dataset)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise MetadataWriteError(f"DB error: {type(e).__name__}") from e
        return dataset

    def insert_columns(self, columns: list[ColumnMetadata]) -> None:
        try:
            self.db.add_all(columns)
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            raise ColumnMetadataWriteError(f"DB error: {type(e).__name__}") from e


def build_file_path(user_id: str, file_name: str, timestamp_ms: int) -> str:
    """目的: ユーザー単位・アップロード単位で衝突しない保存パスを作る。"""
    safe_name = file_name.replace("/", "_").replace("\\", "_").strip() or "upload.csv"
    return f"{user_id}/{timestamp_ms}_{safe_name}"


def decode_csv(content: bytes) -> str:
    # BOM付きUTF-8も受け付け、デコードできないバイトは置換する
    return content.decode("utf-8-sig", errors="replace")


def build_column_metadata(dataset_id: str, table: Table) -> list[ColumnMetadata]:
    """目的: 各ヘッダーについて自身の位置のサンプルを取り、型推定した列メタデータを組み立てる。"""
    columns: list[ColumnMetadata] = []
    for index, name in enumerate(table.headers):
        samples = sample_column(table.rows, index)
        columns.append(
            ColumnMetadata(
                data_source_id=dataset_id,
                column_name=name,
                data_type=infer_data_type(samples),
                sample_values=samples,
            )
        )
    return columns


def ingest_csv(
    content: bytes | None,
    file_name: str,
    user_id: str,
    *,
    content_store: ContentStore,
    metadata_store: MetadataStore,
    clock: Callable[[], float] = time.time,
) -> Dataset:
    """
    CSVを取り込み、保存したデータセットを返す。
    - 失敗は InvalidInputError / StorageWriteError / MetadataWriteError で送出する
    - 列メタデータの保存失敗は送出しない
    """
    # 1) 入力チェック（副作用なし）
    if not content:
        raise InvalidInputError("No file provided")
    text = decode_csv(content)
    table = tabulize(text)
    if not table.headers:
        raise InvalidInputError("CSV is empty")

    # 2) 生バイト列の保存
    file_path = build_file_path(user_id, file_name, int(clock() * 1000))
    try:
        content_store.put(file_path, content, CSV_CONTENT_TYPE)
    except StorageWriteError as e:
        logger.error("Upload error: path=%s error=%s", file_path, e)
        raise

    # 3-4) データセット要約の保存（同期処理なので最初から ready）
    dataset = Dataset(
        id=str(uuid.uuid4()),
        user_id=user_id,
        name=file_name,
        file_path=file_path,
        file_size=len(content),
        row_count=table.row_count,
        column_count=table.column_count,
        status="ready",
    )
    try:
        dataset = metadata_store.insert_dataset(dataset)
    except MetadataWriteError as e:
        logger.error("DB error: path=%s left orphaned in storage: %s", file_path, e)
        raise

    # 5-6) 列メタデータ（失敗は致命的にしない）
    columns = build_column_metadata(dataset.id, table)
    try:
        metadata_store.insert_columns(columns)
    except ColumnMetadataWriteError as e:
        logger.warning("Meta error: dataset_id=%s columns=%d error=%s", dataset.id, len(columns), e)

    logger.info(
        "Ingested dataset_id=%s rows=%d columns=%d bytes=%d",
        dataset.id,
        dataset.row_count,
        dataset.column_count,
        dataset.file_size,
    )
    return dataset
