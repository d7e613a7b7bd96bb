from typing import Optional

from config import MAX_UPLOAD_BYTES

PREDICT_FAILED = "Terjadi kesalahan dalam melakukan prediksi"
HISTORY_FAILED = "Terjadi kesalahan dalam mengambil riwayat prediksi"


class PredictionServiceError(Exception):
    """Base error rendered as a ``{"status": "fail", "message": ...}`` envelope."""

    status_code = 500
    default_message = PREDICT_FAILED

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class InvalidUpload(PredictionServiceError):
    status_code = 400


class PayloadTooLarge(PredictionServiceError):
    status_code = 413
    default_message = f"Payload content length greater than maximum allowed: {MAX_UPLOAD_BYTES}"


class StoreWriteError(PredictionServiceError):
    pass


class StoreReadError(PredictionServiceError):
    default_message = HISTORY_FAILED
