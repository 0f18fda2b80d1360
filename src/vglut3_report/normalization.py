"""Library-size normalization factors."""

import logging
from typing import Optional

from .dataset import ExpressionSet
from .edger import EdgeRWrapper


logger = logging.getLogger(__name__)


def normalize(
    es: ExpressionSet,
    method: str = "TMM",
    edger: Optional[EdgeRWrapper] = None,
) -> ExpressionSet:
    """Attach edgeR normalization factors to ``es``; counts are left unchanged."""
    edger = edger or EdgeRWrapper()
    factors = edger.calc_norm_factors(es.counts, lib_size=es.lib_sizes, method=method)
    logger.info(
        f"{method} normalization factors range {factors.min():.3f}-{factors.max():.3f}"
    )
    return es.with_norm_factors(factors)
