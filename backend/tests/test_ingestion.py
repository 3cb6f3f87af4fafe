import logging

import pytest

from nova.errors import ColumnMetadataWriteError, InvalidInputError, MetadataWriteError, StorageWriteError
from nova.ingestion import build_file_path, ingest_csv


class FakeContentStore:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.puts: list[tuple[str, bytes, str]] = []

    def put(self, path, content, content_type):
        if self.fail:
            raise StorageWriteError("bucket unavailable")
        self.puts.append((path, content, content_type))


class FakeMetadataStore:
    def __init__(self, failDataset: bool = False, failColumns: bool = False):
        self.failDataset = failDataset
        self.failColumns = failColumns
        self.datasets = []
        self.columns = []

    def insert_dataset(self, dataset):
        if self.failDataset:
            raise MetadataWriteError("DB error: OperationalError")
        self.datasets.append(dataset)
        return dataset

    def insert_columns(self, columns):
        if self.failColumns:
            raise ColumnMetadataWriteError("DB error: IntegrityError")
        self.columns.extend(columns)


def _ingest(content: bytes, contentStore=None, metadataStore=None, fileName: str = "people.csv"):
    return ingest_csv(
        content,
        fileName,
        "user-1",
        content_store=contentStore or FakeContentStore(),
        metadata_store=metadataStore or FakeMetadataStore(),
        clock=lambda: 1700000000.123,
    )


def testIngestPersistsBytesDatasetAndColumns():
    """目的: 生ファイル・データセット要約・列メタデータが保存されることを確認する。"""
    contentStore = FakeContentStore()
    metadataStore = FakeMetadataStore()
    raw = b"name,age\nAlice,30\nBob,25\n"

    dataset = _ingest(raw, contentStore, metadataStore)

    assert contentStore.puts == [("user-1/1700000000123_people.csv", raw, "text/csv")]
    assert dataset.user_id == "user-1"
    assert dataset.name == "people.csv"
    assert dataset.file_path == "user-1/1700000000123_people.csv"
    assert dataset.file_size == len(raw)
    assert dataset.row_count == 2
    assert dataset.column_count == 2
    assert dataset.status == "ready"
    assert metadataStore.datasets == [dataset]

    cols = {c.column_name: c for c in metadataStore.columns}
    assert cols["name"].data_type == "text"
    assert cols["name"].sample_values == ["Alice", "Bob"]
    assert cols["age"].data_type == "numeric"
    assert cols["age"].sample_values == ["30", "25"]
    assert all(c.data_source_id == dataset.id for c in metadataStore.columns)


def testIngestRowCountExcludesBlankLines():
    dataset = _ingest(b"a,b\n1,2\n\n3,4\n")

    assert dataset.row_count == 2


def testIngestColumnMetadataCountEqualsColumnCount():
    metadataStore = FakeMetadataStore()
    dataset = _ingest(b"x,x,y\n1,2,3\n", metadataStore=metadataStore)

    assert len(metadataStore.columns) == dataset.column_count == 3
    # 重複ヘッダーでも自身の位置の値を見る
    assert [c.sample_values for c in metadataStore.columns] == [["1"], ["2"], ["3"]]


def testIngestRejectsMissingPayloadWithoutSideEffects():
    contentStore = FakeContentStore()
    metadataStore = FakeMetadataStore()

    with pytest.raises(InvalidInputError):
        _ingest(None, contentStore, metadataStore)
    with pytest.raises(InvalidInputError):
        _ingest(b"\n \n", contentStore, metadataStore)

    assert contentStore.puts == []
    assert metadataStore.datasets == []


def testIngestStorageFailureWritesNothing():
    """目的: 生ファイル保存に失敗したら、データセットも列メタデータも作られないことを確認する。"""
    metadataStore = FakeMetadataStore()

    with pytest.raises(StorageWriteError):
        _ingest(b"a\n1\n", FakeContentStore(fail=True), metadataStore)

    assert metadataStore.datasets == []
    assert metadataStore.columns == []


def testIngestDatasetFailureLeavesStoredFile():
    contentStore = FakeContentStore()

    with pytest.raises(MetadataWriteError):
        _ingest(b"a\n1\n", contentStore, FakeMetadataStore(failDataset=True))

    # 生ファイルはロールバックしない
    assert len(contentStore.puts) == 1


def testIngestColumnFailureStillReturnsDataset(caplog):
    """目的: 列メタデータ保存の失敗はログのみで、データセットは返されることを確認する。"""
    metadataStore = FakeMetadataStore(failColumns=True)

    with caplog.at_level(logging.WARNING, logger="nova.ingestion"):
        dataset = _ingest(b"a,b\n1,2\n", metadataStore=metadataStore)

    assert dataset.status == "ready"
    assert metadataStore.datasets == [dataset]
    assert metadataStore.columns == []
    assert "Meta error" in caplog.text


def testIngestDecodesUtf8BomAndReplacesInvalidBytes():
    metadataStore = FakeMetadataStore()
    _ingest("\ufeffcity,n\n東京,1\n".encode("utf-8") + b"\xff,2\n", metadataStore=metadataStore)

    assert metadataStore.columns[0].column_name == "city"
    assert metadataStore.columns[0].sample_values[0] == "東京"


def testBuildFilePathNamespacesByUserAndSanitizesName():
    assert build_file_path("u1", "sales.csv", 42) == "u1/42_sales.csv"
    assert build_file_path("u1", "../etc/passwd", 42) == "u1/42_.._etc_passwd"
    assert build_file_path("u1", "  ", 42) == "u1/42_upload.csv"
