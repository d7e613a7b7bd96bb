import logging
import os
from typing import Optional

from fastapi import Depends, FastAPI, File, Request, UploadFile
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.concurrency import run_in_threadpool

import config
from classifier import Classifier, create_classifier
from database import RecordStore, create_store
from errors import (
    InvalidUpload,
    PayloadTooLarge,
    PredictionServiceError,
    StoreReadError,
    StoreWriteError,
)
from schemas import FailResponse, HistoriesResponse, HistoryItem, PredictionRecord, PredictResponse

logger = logging.getLogger(__name__)

CHUNK_SIZE = 64 * 1024
# Room for multipart boundaries and part headers on top of the file itself
MULTIPART_OVERHEAD = 16 * 1024


def get_store(request: Request) -> RecordStore:
    return request.app.state.store


def get_classifier(request: Request) -> Classifier:
    return request.app.state.classifier


def fail(status_code: int, message: str) -> JSONResponse:
    return JSONResponse(status_code=status_code, content=FailResponse(message=message).model_dump())


async def handle_service_error(request: Request, exc: PredictionServiceError):
    if exc.status_code >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.warning("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return fail(exc.status_code, exc.message)


async def handle_validation_error(request: Request, exc: RequestValidationError):
    logger.warning("%s %s invalid request: %s", request.method, request.url.path, exc.errors())
    return fail(InvalidUpload.status_code, InvalidUpload.default_message)


async def limit_payload(request: Request, call_next):
    if request.method == "POST" and request.url.path == "/predict":
        length = request.headers.get("content-length")
        if length and length.isdigit() and int(length) > config.MAX_UPLOAD_BYTES + MULTIPART_OVERHEAD:
            exc = PayloadTooLarge()
            logger.warning("POST /predict rejected: content-length %s", length)
            return fail(exc.status_code, exc.message)
    return await call_next(request)


def check_form(form) -> None:
    """Only a single file field named ``image`` is accepted."""
    for key, value in form.multi_items():
        if key != config.UPLOAD_FIELD and not isinstance(value, str):
            raise InvalidUpload("Unexpected field")
    if len(form.getlist(config.UPLOAD_FIELD)) > 1:
        raise InvalidUpload("Unexpected field")


def check_extension(filename: str) -> str:
    ext = os.path.splitext(filename or "")[1]
    if ext not in config.ALLOWED_EXTENSIONS:
        raise InvalidUpload("Only image files are allowed")
    return ext


async def read_upload(upload: UploadFile, max_bytes: int = config.MAX_UPLOAD_BYTES) -> bytes:
    """Read the spooled upload, giving up as soon as it exceeds ``max_bytes``."""
    if upload.size is not None and upload.size > max_bytes:
        raise PayloadTooLarge()
    content = bytearray()
    while True:
        chunk = await upload.read(CHUNK_SIZE)
        if not chunk:
            break
        if len(content) + len(chunk) > max_bytes:
            raise PayloadTooLarge()
        content.extend(chunk)
    return bytes(content)


def create_app(store: Optional[RecordStore] = None, classifier: Optional[Classifier] = None) -> FastAPI:
    app = FastAPI(title="Cancer Prediction API")

    app.state.store = store if store is not None else create_store()
    app.state.classifier = classifier if classifier is not None else create_classifier()

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.middleware("http")(limit_payload)
    app.add_exception_handler(PredictionServiceError, handle_service_error)
    app.add_exception_handler(RequestValidationError, handle_validation_error)

    @app.get("/")
    async def root():
        return {"message": "Cancer Prediction API"}

    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.get("/test")
    async def test_database(store: RecordStore = Depends(get_store)):
        response = {"backend": "✅ Running", "classifier": app.state.classifier.name}
        response["database"] = await run_in_threadpool(store.describe)
        return response

    @app.post(
        "/predict",
        response_model=PredictResponse,
        responses={400: {"model": FailResponse}, 413: {"model": FailResponse}, 500: {"model": FailResponse}},
    )
    async def predict(
        request: Request,
        image: Optional[UploadFile] = File(None, description="Image to classify (.jpg, .jpeg, .png)"),
        store: RecordStore = Depends(get_store),
        classifier: Classifier = Depends(get_classifier),
    ):
        check_form(await request.form())
        if image is None:
            raise InvalidUpload()
        check_extension(image.filename)

        try:
            content = await read_upload(image)
            result = await run_in_threadpool(classifier.classify, content)
        except PredictionServiceError:
            raise
        except Exception as e:
            logger.exception("Classifier %s failed on %s", classifier.name, image.filename)
            raise PredictionServiceError() from e
        finally:
            # Releases Starlette's spooled temporary file
            await image.close()

        record = PredictionRecord.create(result)
        doc = record.to_document()
        try:
            await run_in_threadpool(store.put, record.id, doc)
        except StoreWriteError:
            raise
        except Exception as e:
            logger.exception("Failed to store prediction %s", record.id)
            raise StoreWriteError() from e

        logger.info("Prediction %s: %s", record.id, record.result)
        resp = PredictResponse(data=record)
        return JSONResponse(content=resp.model_dump(by_alias=True))

    @app.get(
        "/predict/histories",
        response_model=HistoriesResponse,
        responses={500: {"model": FailResponse}},
    )
    async def histories(store: RecordStore = Depends(get_store)):
        try:
            docs = await run_in_threadpool(store.get_all)
            items = [HistoryItem.from_document(doc) for doc in docs]
        except StoreReadError:
            raise
        except Exception as e:
            logger.exception("Failed to read prediction history")
            raise StoreReadError() from e

        resp = HistoriesResponse(data=items)
        return JSONResponse(content=resp.model_dump(by_alias=True))

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    logging.basicConfig(
        level=config.LOG_LEVEL,
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    uvicorn.run(app, host=config.HOST, port=config.PORT)
