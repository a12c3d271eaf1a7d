"""
Configuration mixin for 2D max-pooling layers.

This module defines `MaxPoolingConfigMixin`, a lightweight mixin that provides
JSON-serializable configuration hooks for `MaxPooling`.

Only the structural hyperparameters are persisted:

    kernel_width, kernel_height, stride_width, stride_height, rounding_mode

The index map recorded by a training forward pass is transient. It is never
written out and is rebuilt by the first forward pass after a model is loaded.

Design notes
------------
- Assumes the host class exposes the five fields above as attributes or
  properties, with `rounding_mode` being an `Enum` whose `.value` is a string.
- Uses plain Python types (ints, strings) to ensure JSON compatibility.
- Unknown keys are ignored with a `UserWarning` so checkpoints written by a
  newer release still load.
"""

import warnings
from typing import Dict, Any, TypeVar, Type


T = TypeVar("T", bound="MaxPoolingConfigMixin")

_CONFIG_KEYS = (
    "kernel_width",
    "kernel_height",
    "stride_width",
    "stride_height",
    "rounding_mode",
)


class MaxPoolingConfigMixin:
    """
    Mixin providing JSON serialization hooks for max-pooling layers.
    """

    def get_config(self) -> Dict[str, Any]:
        """
        Return JSON-serializable configuration for this pooling layer.
        """
        return {
            "kernel_width": int(self.kernel_width),
            "kernel_height": int(self.kernel_height),
            "stride_width": int(self.stride_width),
            "stride_height": int(self.stride_height),
            "rounding_mode": str(self.rounding_mode.value),
        }

    @classmethod
    def from_config(cls: Type[T], cfg: Dict[str, Any]) -> T:
        """
        Reconstruct the pooling layer from a JSON configuration dict.
        """
        unknown = sorted(set(cfg) - set(_CONFIG_KEYS))
        if unknown:
            warnings.warn(
                f"{cls.__name__}.from_config ignoring unknown keys: {unknown}",
                UserWarning,
                stacklevel=2,
            )
        return cls(
            kernel_width=cfg["kernel_width"],
            kernel_height=cfg["kernel_height"],
            stride_width=cfg.get("stride_width", 1),
            stride_height=cfg.get("stride_height", 1),
            rounding_mode=cfg.get("rounding_mode", "floor"),
        )
