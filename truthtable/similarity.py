"""
Vector similarity helpers.
"""

import json
import math
import logging
from typing import Any, List, Optional, Sequence

logger = logging.getLogger(__name__)


def cosine_similarity(a: Optional[Sequence[float]], b: Optional[Sequence[float]]) -> float:
    """
    Cosine similarity dot(a, b) / (|a| * |b|).

    Returns 0.0 for missing or empty vectors, mismatched lengths, and
    zero-magnitude vectors.
    """
    if not a or not b or len(a) != len(b):
        return 0.0

    dot = sum(x * y for x, y in zip(a, b))
    magnitude_a = math.sqrt(sum(x * x for x in a))
    magnitude_b = math.sqrt(sum(y * y for y in b))
    if magnitude_a == 0 or magnitude_b == 0:
        return 0.0
    return dot / (magnitude_a * magnitude_b)


def coerce_vector(value: Any) -> Optional[List[float]]:
    """
    Read a stored vector.

    pgvector columns come back from PostgREST as strings like "[0.1,0.2]";
    JSON columns come back as lists. Anything else is treated as missing.
    """
    if value is None:
        return None
    if isinstance(value, str):
        try:
            value = json.loads(value)
        except json.JSONDecodeError:
            logger.warning("Stored vector is not valid JSON, ignoring")
            return None
    if isinstance(value, list) and value and all(isinstance(x, (int, float)) for x in value):
        return [float(x) for x in value]
    return None
