def testDeleteDatasetSucceeds(client, uploadCsv, authHeaders):
    """目的: 存在するデータセットを削除すると204が返り、一覧からも消えることを確認する。"""
    datasetId = uploadCsv("colA,colB\n1,hello\n2,world\n").json()["data"]["id"]

    response = client.delete(f"/datasets/{datasetId}", headers=authHeaders)

    assert response.status_code == 204
    assert response.content == b""
    assert client.get(f"/datasets/{datasetId}", headers=authHeaders).status_code == 404
    assert client.get("/datasets", headers=authHeaders).json() == {"data": []}


def testDeleteDatasetCascadesColumnMetadata(client, uploadCsv, authHeaders, db):
    """目的: データセット削除時に tables_meta も CASCADE で消えることを確認する。"""
    from sqlalchemy import func, select

    from nova.models import ColumnMetadata

    datasetId = uploadCsv("a,b,c\n1,2,3\n").json()["data"]["id"]
    response = client.delete(f"/datasets/{datasetId}", headers=authHeaders)
    assert response.status_code == 204

    count = db.execute(
        select(func.count(ColumnMetadata.id)).where(ColumnMetadata.data_source_id == datasetId)
    ).scalar_one()
    assert count == 0


def testDeleteDatasetReturns404ForNonExistentOrForeign(client, uploadCsv, otherAuthHeaders):
    datasetId = uploadCsv("a\n1\n").json()["data"]["id"]

    assert client.delete("/datasets/nope", headers=otherAuthHeaders).status_code == 404
    assert client.delete(f"/datasets/{datasetId}", headers=otherAuthHeaders).status_code == 404
