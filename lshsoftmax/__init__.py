"""lshsoftmax - E2LSH approximate nearest neighbors and softmax regression.

Keyword-argument entry points live in ``lshsoftmax.bindings``.
"""

__version__ = "0.1.0"

from .errors import ConfigurationError, DataError, NumericError
from .lsh import LSHConfig, LSHIndex, build
from .search import QueryResult, compute_recall, query
from .softmax import SoftmaxConfig, SoftmaxModel, evaluate, predict, train

__all__ = [
    'ConfigurationError',
    'DataError',
    'NumericError',
    'LSHConfig',
    'LSHIndex',
    'build',
    'QueryResult',
    'compute_recall',
    'query',
    'SoftmaxConfig',
    'SoftmaxModel',
    'train',
    'predict',
    'evaluate',
]
