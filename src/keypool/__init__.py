"""
keypool: a max-pooling layer for a NumPy deep-learning toolkit.

Public entry points are re-exported here; implementation modules keep a
leading underscore and may move between releases.
"""

from .domain._errors import ConfigurationError, DimensionMismatchError
from .infrastructure.ops.pool2d_cpu import (
    IndexMap,
    PoolingOutput,
    compute_output_dimensions,
    compute_output_size,
    maxpool2d_backward_cpu,
    maxpool2d_forward_cpu,
)
from .infrastructure.pooling._pooling_meta import (
    OutputDimensions,
    PoolingConfig,
    RoundingMode,
)
from .infrastructure.pooling._pooling_module import LayerState, MaxPooling
from .infrastructure.pooling._pooling_rule import MaxPoolingRule, PoolResult
from .infrastructure.module._serialization_core import load_json, save_json

__version__ = "1.0.0"

__all__ = [
    ConfigurationError.__name__,
    DimensionMismatchError.__name__,
    IndexMap.__name__,
    LayerState.__name__,
    MaxPooling.__name__,
    MaxPoolingRule.__name__,
    OutputDimensions.__name__,
    PoolResult.__name__,
    PoolingConfig.__name__,
    PoolingOutput.__name__,
    RoundingMode.__name__,
    compute_output_dimensions.__name__,
    compute_output_size.__name__,
    load_json.__name__,
    maxpool2d_backward_cpu.__name__,
    maxpool2d_forward_cpu.__name__,
    save_json.__name__,
]
