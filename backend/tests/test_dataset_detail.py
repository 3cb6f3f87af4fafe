def testGetDatasetDetailReturnsSummaryAndColumns(client, uploadCsv, authHeaders):
    """目的: GET /datasets/{id} が要約と列メタデータ（型・サンプル）を返すことを確認する。"""
    csvText = "day,amount,memo\n2024-01-01,100,apple\n2024-01-02,,banana\n2024-01-03,300,\n"
    datasetId = uploadCsv(csvText).json()["data"]["id"]

    response = client.get(f"/datasets/{datasetId}", headers=authHeaders)

    assert response.status_code == 200
    body = response.json()
    assert body["data"]["id"] == datasetId
    assert body["data"]["row_count"] == 3

    columns = {c["column_name"]: c for c in body["columns"]}
    assert len(columns) == body["data"]["column_count"] == 3
    assert columns["day"]["data_type"] == "date"
    assert columns["day"]["sample_values"] == ["2024-01-01", "2024-01-02", "2024-01-03"]
    assert columns["amount"]["data_type"] == "numeric"
    assert columns["amount"]["sample_values"] == ["100", "300"]
    assert columns["memo"]["data_type"] == "text"
    assert columns["memo"]["sample_values"] == ["apple", "banana"]


def testGetDatasetDetailReturns404ForMissingDataset(client, authHeaders):
    """目的: 存在しないIDを指定した場合に 404 が返ることを確認する。"""
    response = client.get("/datasets/does-not-exist", headers=authHeaders)

    assert response.status_code == 404
    assert response.json() == {"error": "Data source not found"}


def testGetDatasetDetailHidesOtherUsersDataset(client, uploadCsv, otherAuthHeaders):
    datasetId = uploadCsv("a\n1\n").json()["data"]["id"]

    response = client.get(f"/datasets/{datasetId}", headers=otherAuthHeaders)

    assert response.status_code == 404
