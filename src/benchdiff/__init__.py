__version__ = "0.1.0"

from .bench.compare import Comparison, ComparisonResult
from .bench.matcher import BenchmarkSelection, BenchmarkSelector
from .config import BenchdiffConfig
from .errors import BenchdiffError, OperationCancelled
from .report.models import BenchmarkReport
from .scope import CancelToken, ResourceScope

__all__ = [
    "__version__",
    "BenchdiffConfig",
    "BenchdiffError",
    "BenchmarkReport",
    "BenchmarkSelection",
    "BenchmarkSelector",
    "CancelToken",
    "Comparison",
    "ComparisonResult",
    "OperationCancelled",
    "ResourceScope",
]
