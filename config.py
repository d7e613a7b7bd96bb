import os

HOST = os.getenv("HOST", "localhost")
PORT = int(os.getenv("PORT", 4000))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# Record store; leave DATABASE_URL unset to keep predictions in memory
DATABASE_URL = os.getenv("DATABASE_URL")
DATABASE_NAME = os.getenv("DATABASE_NAME", "cancer_prediction")
COLLECTION_NAME = os.getenv("COLLECTION_NAME", "predictions")

MODEL_PATH = os.getenv("MODEL_PATH", "models/cancer_classifier.onnx")
MODEL_INPUT_SIZE = (224, 224)  # width, height
THRESHOLD = float(os.getenv("THRESHOLD", 0.5))

MAX_UPLOAD_BYTES = 1_000_000
ALLOWED_EXTENSIONS = (".jpg", ".jpeg", ".png")
UPLOAD_FIELD = "image"
