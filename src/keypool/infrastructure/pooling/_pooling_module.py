"""
Max pooling layer for keypool (2D, NCHW).

`MaxPooling` is the layer facade around the CPU pooling operators in
`ops.pool2d_cpu`. It owns:

- the hyperparameters (`PoolingConfig`), replaced wholesale by the setters,
- the declared input dimensions and the derived `OutputDimensions`,
- the index map recorded by the last training-mode forward pass, which the
  next backward pass consumes.

Lifecycle
---------
    UNCONFIGURED --(declare input dims / forward)--> CONFIGURED
    CONFIGURED   --(forward in training mode)------> READY
    READY        --(forward)-----------------------> READY (map replaced)
    READY        --(backward)----------------------> READY (map reused)
    any          --(config or input-shape change)--> CONFIGURED / UNCONFIGURED

State-dependent methods (`compute_output_dimensions`, `backward`) are
dispatched on `_state` with a control-path builder, so each state's
behavior lives in its own function.

For callers that prefer explicit state, `forward_with_indices` returns the
index map and `ops.pool2d_cpu.maxpool2d_backward_cpu` accepts it directly.
"""

from __future__ import annotations

import copy
from dataclasses import replace
from enum import Enum
from typing import Optional, Sequence, Tuple

import numpy as np

from ...domain._errors import ConfigurationError, DimensionMismatchError
from ...domain._pooling import IPoolingRule
from ...domain.model._pool2d_mixin import MaxPoolingConfigMixin
from ...domain.utils._control_path import create_path_builder
from .._module import Module
from ..module._serialization_core import register_module
from ..ops.pool2d_cpu import (
    IndexMap,
    PoolingOutput,
    compute_output_dimensions,
    maxpool2d_backward_cpu,
    maxpool2d_forward_cpu,
)
from ._pooling_meta import OutputDimensions, PoolingConfig, RoundingMode
from ._pooling_rule import MaxPoolingRule


class LayerState(Enum):
    """Lifecycle states of a pooling layer."""

    UNCONFIGURED = "unconfigured"
    CONFIGURED = "configured"
    READY = "ready"


control_path = create_path_builder()


@register_module()
class MaxPooling(MaxPoolingConfigMixin, Module):
    """
    2D max pooling layer (NCHW).

    Applies max pooling over the spatial dimensions (H, W) independently per
    channel. Batch and channel dimensions are preserved.

    Shape semantics
    ---------------
    Input:
        x.shape == (N, C, H, W)

    Output:
        y.shape == (N, C, H_out, W_out)

    Notes
    -----
    - In training mode the forward pass records, for every output cell, the
      flat input index of the selected maximum. `backward` scatter-adds the
      upstream gradient to exactly those locations.
    - In evaluation mode only values are computed and no index map is kept.
    - Ties are broken by the first maximum when the window is scanned along
      W first, then down H (row by row of the input plane).
    """

    def __init__(
        self,
        kernel_width: int,
        kernel_height: int,
        stride_width: int = 1,
        stride_height: int = 1,
        rounding_mode: RoundingMode | str = RoundingMode.FLOOR,
        *,
        floor: Optional[bool] = None,
        rule: Optional[IPoolingRule] = None,
    ) -> None:
        """
        Construct a MaxPooling layer.

        Parameters
        ----------
        kernel_width : int
            Window extent along the W axis.
        kernel_height : int
            Window extent along the H axis.
        stride_width : int, optional
            Anchor step along the W axis. Defaults to 1.
        stride_height : int, optional
            Anchor step along the H axis. Defaults to 1.
        rounding_mode : RoundingMode or str, optional
            "floor" (default) or "ceil".
        floor : bool, optional
            Boolean spelling of the rounding mode; overrides `rounding_mode`
            when given.
        rule : IPoolingRule, optional
            Window reduction strategy. Defaults to `MaxPoolingRule`.

        Raises
        ------
        ConfigurationError
            If any kernel/stride value is not a positive integer or the
            rounding mode is unknown.
        """
        super().__init__()
        if floor is not None:
            rounding_mode = RoundingMode.coerce(bool(floor))
        self._config = PoolingConfig(
            kernel_width=kernel_width,
            kernel_height=kernel_height,
            stride_width=stride_width,
            stride_height=stride_height,
            rounding_mode=rounding_mode,
        )
        self._rule: IPoolingRule = MaxPoolingRule() if rule is None else rule
        self._input_dimensions: Optional[Tuple[int, int, int]] = None
        self._output_dimensions: Optional[OutputDimensions] = None
        self._index_map: Optional[IndexMap] = None

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------
    @property
    def _state(self) -> LayerState:
        if self._input_dimensions is None:
            return LayerState.UNCONFIGURED
        if self._index_map is None:
            return LayerState.CONFIGURED
        return LayerState.READY

    @property
    def state(self) -> LayerState:
        """Current lifecycle state."""
        return self._state

    @property
    def index_map(self) -> Optional[IndexMap]:
        """Index map from the last training-mode forward pass, if any."""
        return self._index_map

    def _invalidate(self) -> None:
        self._output_dimensions = None
        self._index_map = None

    def _reconfigure(self, **changes) -> None:
        config = replace(self._config, **changes)
        if config != self._config:
            self._config = config
            self._invalidate()

    # ------------------------------------------------------------------
    # Hyperparameters
    # ------------------------------------------------------------------
    @property
    def config(self) -> PoolingConfig:
        """The immutable hyperparameter record."""
        return self._config

    @property
    def rule(self) -> IPoolingRule:
        """Window reduction strategy used by the forward pass."""
        return self._rule

    @property
    def kernel_width(self) -> int:
        """Window extent along the W axis."""
        return self._config.kernel_width

    @kernel_width.setter
    def kernel_width(self, value: int) -> None:
        self._reconfigure(kernel_width=value)

    @property
    def kernel_height(self) -> int:
        """Window extent along the H axis."""
        return self._config.kernel_height

    @kernel_height.setter
    def kernel_height(self, value: int) -> None:
        self._reconfigure(kernel_height=value)

    @property
    def stride_width(self) -> int:
        """Anchor step along the W axis."""
        return self._config.stride_width

    @stride_width.setter
    def stride_width(self, value: int) -> None:
        self._reconfigure(stride_width=value)

    @property
    def stride_height(self) -> int:
        """Anchor step along the H axis."""
        return self._config.stride_height

    @stride_height.setter
    def stride_height(self, value: int) -> None:
        self._reconfigure(stride_height=value)

    @property
    def rounding_mode(self) -> RoundingMode:
        """Output-size rounding policy (floor or ceil)."""
        return self._config.rounding_mode

    @rounding_mode.setter
    def rounding_mode(self, value: RoundingMode | str) -> None:
        self._reconfigure(rounding_mode=RoundingMode.coerce(value))

    @property
    def floor(self) -> bool:
        """True when floor rounding is active; assign False for ceil."""
        return self._config.floor

    @floor.setter
    def floor(self, value: bool) -> None:
        self._reconfigure(rounding_mode=RoundingMode.coerce(bool(value)))

    # ------------------------------------------------------------------
    # Dimensions
    # ------------------------------------------------------------------
    @property
    def input_dimensions(self) -> Optional[Tuple[int, int, int]]:
        """
        Declared per-sample input shape (C, H, W), or None if undeclared.

        A new shape is checked against the configuration before it is
        stored; if the kernel cannot pool it, `ConfigurationError` is raised
        and the layer is left as it was. Assigning a different valid shape
        drops any held index map.
        """
        return self._input_dimensions

    @input_dimensions.setter
    def input_dimensions(self, dims: Sequence[int]) -> None:
        dims = tuple(int(d) for d in dims)
        if len(dims) != 3:
            raise DimensionMismatchError(
                "input dimensions must be (C, H, W)", actual=dims
            )
        if any(d < 1 for d in dims):
            raise ConfigurationError(
                f"input dimensions must be positive, got {dims}",
                field="input_dimensions",
                value=dims,
            )
        if dims == self._input_dimensions:
            return
        output_dimensions = compute_output_dimensions(dims[1], dims[2], self._config)
        self._input_dimensions = dims
        self._output_dimensions = output_dimensions
        self._index_map = None

    def declare_input_dimensions(self, height: int, width: int, *rest: int) -> None:
        """
        Declare the input as (height, width, d2, d3, ...).

        Every axis after the first two is folded into the channel count, so
        a (H, W, C, T) declaration pools C * T independent planes.
        """
        self.input_dimensions = (int(np.prod(rest, dtype=np.int64)), height, width)

    def compute_output_dimensions(self) -> OutputDimensions:
        """
        Recompute the output dimensions from the declared input dimensions.

        Returns
        -------
        OutputDimensions

        Raises
        ------
        ConfigurationError
            If no input dimensions were declared, or the configuration yields
            an empty output for them.
        """
        raise NotImplementedError

    @property
    def output_dimensions(self) -> OutputDimensions:
        """Output dimensions, computed on first access after a change."""
        if self._output_dimensions is None:
            return self.compute_output_dimensions()
        return self._output_dimensions

    @property
    def output_shape(self) -> Tuple[int, int, int]:
        """Per-sample output shape (C, H_out, W_out)."""
        dims = self.output_dimensions
        return (self._input_dimensions[0], dims.output_height, dims.output_width)

    # ------------------------------------------------------------------
    # Computation
    # ------------------------------------------------------------------
    def _adopt_input(self, x) -> np.ndarray:
        x = self._as_batch(x)
        self.input_dimensions = x.shape[1:]
        if self._output_dimensions is None:
            self.compute_output_dimensions()
        return x

    @staticmethod
    def _as_batch(x) -> np.ndarray:
        x = np.asarray(x)
        if x.ndim != 4:
            raise DimensionMismatchError(
                "MaxPooling expects a 4D NCHW input", actual=tuple(x.shape)
            )
        return x

    def forward(self, x) -> np.ndarray:
        """
        Apply max pooling to a batch.

        Parameters
        ----------
        x : np.ndarray
            Input of shape (N, C, H, W).

        Returns
        -------
        np.ndarray
            Output of shape (N, C, H_out, W_out) with the input dtype.

        Notes
        -----
        - If `x.shape[1:]` differs from the declared input dimensions, the
          new shape is adopted first (dropping any held index map). A shape
          the kernel cannot pool raises before anything is changed.
        - Training mode replaces the held index map with this pass's map;
          evaluation mode drops it.
        """
        x = self._adopt_input(x)
        result = maxpool2d_forward_cpu(
            x, self._config, return_indices=self.training, rule=self._rule
        )
        self._index_map = result.index_map
        return result.output

    def forward_with_indices(self, x) -> PoolingOutput:
        """
        Apply max pooling and return the index map instead of keeping it.

        Nothing is stored on the layer: declared dimensions, cached output
        dimensions and the held index map stay as they were, whatever the
        shape of `x`.
        """
        x = self._as_batch(x)
        return maxpool2d_forward_cpu(
            x, self._config, return_indices=True, rule=self._rule
        )

    def backward(self, x, grad_out) -> np.ndarray:
        """
        Route the upstream gradient to the maxima selected by the last
        training-mode forward pass.

        Parameters
        ----------
        x : np.ndarray or None
            The input given to that forward pass. Only its shape is used, to
            reject gradients computed against a different input.
        grad_out : np.ndarray
            Gradient with respect to the output, shape (N, C, H_out, W_out).

        Returns
        -------
        np.ndarray
            Gradient with respect to the input, shape (N, C, H, W).

        Raises
        ------
        DimensionMismatchError
            If no index map is held, or `grad_out` / `x` do not match it.
        """
        raise NotImplementedError

    # ------------------------------------------------------------------
    # Copying
    # ------------------------------------------------------------------
    def clone(self) -> "MaxPooling":
        """
        Return an independent deep copy of this layer.

        Configuration, mode, declared dimensions and the held index map are
        copied; no array is shared with the original.
        """
        other = type(self)(
            kernel_width=self.kernel_width,
            kernel_height=self.kernel_height,
            stride_width=self.stride_width,
            stride_height=self.stride_height,
            rounding_mode=self.rounding_mode,
            rule=copy.deepcopy(self._rule),
        )
        other.train(self.training)
        other._input_dimensions = self._input_dimensions
        other._output_dimensions = self._output_dimensions
        other._index_map = None if self._index_map is None else self._index_map.copy()
        return other

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kernel=({self.kernel_width}, {self.kernel_height}), "
            f"stride=({self.stride_width}, {self.stride_height}), "
            f"rounding_mode={self.rounding_mode.value!r})"
        )


def _undeclared_input(method, state) -> ConfigurationError:
    return ConfigurationError(
        f"{method.__name__}() requires declared input dimensions "
        f"(layer state: {state.value})",
        field="input_dimensions",
    )


def _missing_index_map(method, state) -> DimensionMismatchError:
    return DimensionMismatchError(
        f"{method.__name__}() requires a training-mode forward() on the same "
        f"input shape first (layer state: {state.value})"
    )


@control_path(MaxPooling, MaxPooling.compute_output_dimensions, LayerState.READY)
@control_path(
    MaxPooling,
    MaxPooling.compute_output_dimensions,
    LayerState.CONFIGURED,
    trap_exception=_undeclared_input,
)
def _compute_output_dimensions(self: MaxPooling) -> OutputDimensions:
    _, height, width = self._input_dimensions
    self._output_dimensions = compute_output_dimensions(height, width, self._config)
    return self._output_dimensions


@control_path(
    MaxPooling,
    MaxPooling.backward,
    LayerState.READY,
    trap_exception=_missing_index_map,
)
def _backward_ready(self: MaxPooling, x, grad_out) -> np.ndarray:
    index_map = self._index_map
    grad_out = np.asarray(grad_out)
    expected = index_map.output_shape
    if grad_out.shape != expected:
        raise DimensionMismatchError(
            "grad_out does not match the last forward output",
            expected=expected,
            actual=tuple(grad_out.shape),
        )
    x_shape = None if x is None else tuple(np.shape(x))
    return maxpool2d_backward_cpu(
        grad_out, index_map, x_shape=x_shape, overlapping=self._config.overlapping
    )
