"""Vglut3 report - differential expression of wildtype vs Vglut3-/- RNA-seq."""

__version__ = "0.1.0"

from .config import get_config, Config
from .dataset import ExpressionSet
from .pipeline import run_pipeline, PipelineResult
from .report import build_report, write_report

__all__ = [
    'get_config',
    'Config',
    'ExpressionSet',
    'run_pipeline',
    'PipelineResult',
    'build_report',
    'write_report'
]
