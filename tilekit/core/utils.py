from __future__ import annotations
import numpy as np
import logging

def get_logger(name: str = "tilekit") -> logging.Logger:
    logger = logging.getLogger(name)
    if not logger.handlers:
        handler = logging.StreamHandler()
        fmt = logging.Formatter("[%(levelname)s] %(message)s")
        handler.setFormatter(fmt)
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
    return logger

def ensure_unit_vectors(v: np.ndarray, eps: float = 1e-12) -> np.ndarray:
    norms = np.linalg.norm(v, axis=1, keepdims=True)
    norms = np.clip(norms, eps, None)
    return v / norms

def to_posix(path: str) -> str:
    """Normalise a relative path or url to forward slashes."""
    return str(path).replace("\\", "/")
