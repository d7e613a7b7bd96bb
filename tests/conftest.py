import pytest
from fastapi.testclient import TestClient

from classifier import Classifier
from database import InMemoryRecordStore, RecordStore
from main import create_app
from schemas import Result


class FixedClassifier(Classifier):
    name = "fixed"

    def __init__(self, result=Result.CANCER):
        self.result = result
        self.seen = []

    def classify(self, image_bytes):
        self.seen.append(image_bytes)
        return self.result


class BrokenStore(RecordStore):
    def put(self, record_id, record):
        raise RuntimeError("store unavailable")

    def get_all(self):
        raise RuntimeError("store unavailable")


@pytest.fixture
def store():
    return InMemoryRecordStore()


@pytest.fixture
def classifier():
    return FixedClassifier()


@pytest.fixture
def client(store, classifier):
    app = create_app(store=store, classifier=classifier)
    return TestClient(app)


@pytest.fixture
def broken_client(classifier):
    app = create_app(store=BrokenStore(), classifier=classifier)
    return TestClient(app)


def image_file(name="scan.png", size=10_000, content_type="image/png"):
    return (name, b"\x89PNG\r\n\x1a\n" + b"\0" * (size - 8), content_type)
