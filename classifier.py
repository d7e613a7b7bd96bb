"""Classifiers mapping raw image bytes to a Cancer / Non-cancer verdict."""
import logging
import os
from io import BytesIO
from typing import Optional

import numpy as np
from PIL import Image, UnidentifiedImageError

import config
from errors import InvalidUpload
from schemas import Result

logger = logging.getLogger(__name__)


class Classifier:
    name = "classifier"

    def classify(self, image_bytes: bytes) -> Result:
        raise NotImplementedError


class RandomClassifier(Classifier):
    """Placeholder model: a coin flip per image."""

    name = "random"

    def __init__(self, seed: Optional[int] = None):
        self._rng = np.random.default_rng(seed)

    def classify(self, image_bytes):
        return Result.CANCER if self._rng.random() > 0.5 else Result.NON_CANCER


def preprocess_image(file_bytes: bytes, size=config.MODEL_INPUT_SIZE) -> np.ndarray:
    try:
        img = Image.open(BytesIO(file_bytes)).convert("RGB")
    except (UnidentifiedImageError, Image.DecompressionBombError, OSError) as e:
        raise InvalidUpload("Invalid image file") from e

    img = img.resize(size)
    arr = np.asarray(img).astype(np.float32) / 255.0
    arr = (arr - 0.5) / 0.5  # [-1, 1]
    arr = np.transpose(arr, (2, 0, 1))  # NCHW
    return np.expand_dims(arr, 0)


def cancer_probability(logits: np.ndarray) -> float:
    logits = np.asarray(logits, dtype=np.float64)
    if logits.ndim == 2 and logits.shape[1] == 2:
        exps = np.exp(logits - np.max(logits, axis=1, keepdims=True))
        probs = exps / np.sum(exps, axis=1, keepdims=True)
        return float(probs[0, 1])
    return float(1 / (1 + np.exp(-np.squeeze(logits))))


class OnnxClassifier(Classifier):
    name = "onnx"

    def __init__(self, model_path: str = config.MODEL_PATH, threshold: float = config.THRESHOLD):
        self.model_path = model_path
        self.threshold = threshold
        self._session = None
        self._input_name = None
        self._output_name = None

    def load(self):
        if self._session is not None:
            return
        import onnxruntime as ort

        providers = ["CUDAExecutionProvider", "CPUExecutionProvider"]
        available = ort.get_available_providers()
        self._session = ort.InferenceSession(
            self.model_path, providers=[p for p in providers if p in available]
        )
        self._input_name = self._session.get_inputs()[0].name
        self._output_name = self._session.get_outputs()[0].name
        logger.info("Loaded ONNX model from %s", self.model_path)

    def classify(self, image_bytes):
        self.load()
        inp = preprocess_image(image_bytes)
        outputs = self._session.run([self._output_name], {self._input_name: inp})
        prob_cancer = cancer_probability(outputs[0])
        return Result.CANCER if prob_cancer >= self.threshold else Result.NON_CANCER


def create_classifier(model_path: Optional[str] = None) -> Classifier:
    model_path = model_path or config.MODEL_PATH
    if not os.path.exists(model_path):
        logger.warning("Model file %s not found, falling back to random predictions", model_path)
        return RandomClassifier()

    clf = OnnxClassifier(model_path)
    try:
        clf.load()
    except Exception as e:
        logger.warning("Could not load model %s (%s), falling back to random predictions", model_path, e)
        return RandomClassifier()
    logger.info("Using ONNX classifier %s", model_path)
    return clf
