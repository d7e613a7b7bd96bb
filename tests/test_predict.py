import asyncio
import re
from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from starlette.datastructures import UploadFile

from classifier import Classifier, create_classifier
from conftest import FixedClassifier, image_file
from errors import PayloadTooLarge
from main import CHUNK_SIZE, create_app, read_upload
from schemas import Result


class ExplodingClassifier(Classifier):
    name = "exploding"

    def classify(self, image_bytes):
        raise RuntimeError("session crashed")


@pytest.mark.parametrize("name", ["scan.jpg", "scan.jpeg", "scan.png"])
def test_predict_accepts_images(client, name):
    res = client.post("/predict", files={"image": image_file(name)})

    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "success"
    assert body["message"] == "Model is predicted successfully"
    assert body["data"]["result"] == "Cancer"
    assert body["data"]["suggestion"] == "Segera periksa ke dokter!"
    assert re.fullmatch(r"\d{4}-\d{2}-\d{2}T\d{2}:\d{2}:\d{2}\.\d{3}Z", body["data"]["createdAt"])


def test_predict_non_cancer_suggestion(store):
    app = create_app(store=store, classifier=FixedClassifier(Result.NON_CANCER))
    res = TestClient(app).post("/predict", files={"image": image_file()})

    assert res.status_code == 200
    assert res.json()["data"]["result"] == "Non-cancer"
    assert res.json()["data"]["suggestion"] == "Penyakit kanker tidak terdeteksi."


def test_predict_passes_bytes_to_classifier(client, classifier):
    name, content, content_type = image_file(size=2048)
    client.post("/predict", files={"image": (name, content, content_type)})

    assert classifier.seen == [content]


def test_predict_stores_record_with_fresh_id(client, store):
    ids = {client.post("/predict", files={"image": image_file()}).json()["data"]["id"] for _ in range(3)}

    assert len(ids) == 3
    assert {doc["id"] for doc in store.get_all()} == ids


def test_predict_accepts_exact_limit(client):
    res = client.post("/predict", files={"image": image_file(size=1_000_000)})
    assert res.status_code == 200


def test_predict_rejects_oversized_file(client, store):
    res = client.post("/predict", files={"image": image_file(size=1_000_001)})

    assert res.status_code == 413
    assert res.json() == {
        "status": "fail",
        "message": "Payload content length greater than maximum allowed: 1000000",
    }
    assert store.get_all() == []


def test_predict_rejects_oversized_body(client):
    res = client.post("/predict", files={"image": image_file(size=1_200_000)})

    assert res.status_code == 413
    assert res.json()["message"] == "Payload content length greater than maximum allowed: 1000000"


@pytest.mark.parametrize("name", ["notes.txt", "scan.gif", "scan.PNG", "scan", ".png"])
def test_predict_rejects_other_extensions(client, store, name):
    res = client.post("/predict", files={"image": image_file(name)})

    assert res.status_code == 400
    assert res.json() == {"status": "fail", "message": "Only image files are allowed"}
    assert store.get_all() == []


def test_predict_requires_image(client):
    res = client.post("/predict", data={"note": "no file"})

    assert res.status_code == 400
    assert res.json() == {"status": "fail", "message": "Terjadi kesalahan dalam melakukan prediksi"}


def test_predict_rejects_unexpected_field(client):
    res = client.post("/predict", files={"file": image_file()})

    assert res.status_code == 400
    assert res.json()["message"] == "Unexpected field"


def test_predict_rejects_multiple_images(client, store):
    res = client.post("/predict", files=[("image", image_file("a.png")), ("image", image_file("b.png"))])

    assert res.status_code == 400
    assert res.json()["message"] == "Unexpected field"
    assert store.get_all() == []


def test_read_upload_rejects_reported_size_before_reading():
    upload = UploadFile(BytesIO(b"x" * 10), size=1_000_001, filename="scan.png")

    with pytest.raises(PayloadTooLarge):
        asyncio.run(read_upload(upload))
    assert upload.file.tell() == 0


def test_read_upload_stops_at_limit_without_size():
    upload = UploadFile(BytesIO(b"x" * 300_000), filename="scan.png")

    with pytest.raises(PayloadTooLarge):
        asyncio.run(read_upload(upload, max_bytes=100_000))
    assert upload.file.tell() <= 100_000 + CHUNK_SIZE


def test_read_upload_returns_content():
    upload = UploadFile(BytesIO(b"abc"), filename="scan.png")
    assert asyncio.run(read_upload(upload)) == b"abc"


def test_predict_classifier_failure(store):
    app = create_app(store=store, classifier=ExplodingClassifier())
    res = TestClient(app).post("/predict", files={"image": image_file()})

    assert res.status_code == 500
    assert res.json() == {"status": "fail", "message": "Terjadi kesalahan dalam melakukan prediksi"}
    assert store.get_all() == []


def test_predict_with_unloadable_model(tmp_path, store):
    model = tmp_path / "model.onnx"
    model.write_bytes(b"not a model")

    app = create_app(store=store, classifier=create_classifier(str(model)))
    res = TestClient(app).post("/predict", files={"image": image_file()})

    assert res.status_code == 200
    assert res.json()["data"]["result"] in ("Cancer", "Non-cancer")


def test_predict_store_failure(broken_client):
    res = broken_client.post("/predict", files={"image": image_file()})

    assert res.status_code == 500
    assert res.json() == {"status": "fail", "message": "Terjadi kesalahan dalam melakukan prediksi"}
