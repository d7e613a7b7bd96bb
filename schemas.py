import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List

from pydantic import BaseModel, ConfigDict, Field


class Result(str, Enum):
    CANCER = "Cancer"
    NON_CANCER = "Non-cancer"


SUGGESTIONS = {
    Result.CANCER: "Segera periksa ke dokter!",
    Result.NON_CANCER: "Penyakit kanker tidak terdeteksi.",
}


def utc_timestamp() -> str:
    """ISO timestamp in UTC with millisecond precision, e.g. 2024-01-01T00:00:00.000Z"""
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class PredictionRecord(BaseModel):
    """Predictions collection schema
    Collection name: "predictions"
    """
    model_config = ConfigDict(populate_by_name=True, frozen=True, use_enum_values=True)

    id: str = Field(..., description="Unique prediction id")
    result: Result = Field(..., description="Predicted class label")
    suggestion: str = Field(..., description="Advice derived from the result")
    created_at: str = Field(..., alias="createdAt", description="ISO timestamp when prediction was made")

    @classmethod
    def create(cls, result: Result) -> "PredictionRecord":
        result = Result(result)
        return cls(
            id=str(uuid.uuid4()),
            result=result,
            suggestion=SUGGESTIONS[result],
            created_at=utc_timestamp(),
        )

    def to_document(self) -> dict:
        return self.model_dump(by_alias=True)


class History(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    result: str
    created_at: str = Field(..., alias="createdAt")
    suggestion: str
    id: str


class HistoryItem(BaseModel):
    id: str
    history: History

    @classmethod
    def from_document(cls, doc: dict) -> "HistoryItem":
        return cls(
            id=doc["id"],
            history=History(
                result=doc["result"],
                created_at=doc["createdAt"],
                suggestion=doc["suggestion"],
                id=doc["id"],
            ),
        )


class PredictResponse(BaseModel):
    status: str = "success"
    message: str = "Model is predicted successfully"
    data: PredictionRecord


class HistoriesResponse(BaseModel):
    status: str = "success"
    data: List[HistoryItem]


class FailResponse(BaseModel):
    status: str = "fail"
    message: str
