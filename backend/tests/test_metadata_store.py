import pytest
from sqlalchemy import func, select

from nova.errors import ColumnMetadataWriteError, MetadataWriteError
from nova.ingestion import SqlMetadataStore
from nova.models import ColumnMetadata, Dataset


def _dataset(**overrides) -> Dataset:
    fields = dict(
        id="ds-1",
        user_id="alice",
        name="a.csv",
        file_path="alice/1_a.csv",
        file_size=4,
        row_count=1,
        column_count=1,
        status="ready",
    )
    fields.update(overrides)
    return Dataset(**fields)


def testInsertDatasetAndColumnsCommit(db):
    store = SqlMetadataStore(db)

    saved = store.insert_dataset(_dataset())
    store.insert_columns(
        [ColumnMetadata(data_source_id=saved.id, column_name="a", data_type="numeric", sample_values=["1"])]
    )

    assert saved.created_at is not None
    assert db.execute(select(func.count(ColumnMetadata.id))).scalar_one() == 1


def testInsertDatasetFailureIsMetadataWriteError(db):
    """目的: 必須項目欠落などのDBエラーが MetadataWriteError に変換され、ロールバックされることを確認する。"""
    store = SqlMetadataStore(db)

    with pytest.raises(MetadataWriteError):
        store.insert_dataset(_dataset(name=None))

    assert db.execute(select(func.count(Dataset.id))).scalar_one() == 0


def testInsertColumnsFailureIsColumnMetadataWriteError(db):
    store = SqlMetadataStore(db)

    # 存在しないデータセットへの外部キー
    with pytest.raises(ColumnMetadataWriteError):
        store.insert_columns([ColumnMetadata(data_source_id="missing", column_name="a", data_type="text")])

    assert db.execute(select(func.count(ColumnMetadata.id))).scalar_one() == 0
