"""
CPU reference implementations for 2D max pooling (NumPy backend).

This module provides **readable and exact** NumPy implementations of the
max-pooling kernel for tensors in **NCHW** layout:

- `compute_output_size` / `compute_output_dimensions`
    Output-size arithmetic under floor and ceil rounding.
- `maxpool2d_forward_cpu`
    Slides the window over every channel plane, pools each window with a
    pooling rule and (optionally) records an index map.
- `maxpool2d_backward_cpu`
    Scatter-adds an upstream gradient into an input-shaped buffer using the
    index map produced by the forward pass.

Design notes
------------
- The forward operator returns the index map explicitly and the backward
  operator takes it as an argument; there is no hidden state at this level.
- Index-map entries are flat indices into the C-order address space of the
  *whole* input array: ((n * C + c) * H + h) * W + w.
- Ceil mode never pads. Windows that run past the input edge are clipped to
  the available elements.
- All operations assume **NCHW** layout and keep the input dtype.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np

from ...domain._errors import ConfigurationError, DimensionMismatchError
from ...domain._pooling import IPoolingRule
from ..pooling._pooling_meta import OutputDimensions, PoolingConfig, RoundingMode
from ..pooling._pooling_rule import MaxPoolingRule


@dataclass(frozen=True)
class IndexMap:
    """
    Record of which input element produced each pooled output value.

    Attributes
    ----------
    indices : np.ndarray
        int64 array shaped like the pooled output (N, C, H_out, W_out). Each
        entry is a flat C-order index into an input of shape `input_shape`.
    input_shape : tuple[int, int, int, int]
        Shape of the input the map was built from.
    """

    indices: np.ndarray
    input_shape: Tuple[int, int, int, int]

    @property
    def output_shape(self) -> Tuple[int, ...]:
        return tuple(self.indices.shape)

    def copy(self) -> "IndexMap":
        return IndexMap(indices=self.indices.copy(), input_shape=self.input_shape)


@dataclass(frozen=True)
class PoolingOutput:
    """
    Result of `maxpool2d_forward_cpu`.

    Attributes
    ----------
    output : np.ndarray
        Pooled values, shape (N, C, H_out, W_out).
    index_map : IndexMap or None
        Argmax locations, or None when indices were not requested.
    """

    output: np.ndarray
    index_map: Optional[IndexMap]


def compute_output_size(
    input_size: int,
    kernel: int,
    stride: int,
    rounding_mode: RoundingMode | str = RoundingMode.FLOOR,
) -> int:
    """
    Compute the number of window anchors along one spatial axis.

    Parameters
    ----------
    input_size : int
        Input extent along the axis.
    kernel : int
        Window extent along the axis.
    stride : int
        Anchor step along the axis.
    rounding_mode : RoundingMode or str
        FLOOR: floor((input_size - kernel) / stride) + 1
        CEIL : ceil((input_size - kernel) / stride) + 1

    Returns
    -------
    int
        Output extent along the axis (>= 1).

    Raises
    ------
    ConfigurationError
        If kernel, stride or input_size is < 1, if kernel > input_size in
        floor mode, or if the result would be < 1.

    Notes
    -----
    In ceil mode the last window may extend past the input and is clipped.
    If it would *start* at or beyond the input edge (possible only when
    stride > kernel) it would be empty, so it is dropped.
    """
    mode = RoundingMode.coerce(rounding_mode)
    for name, v in (("kernel", kernel), ("stride", stride), ("input_size", input_size)):
        if v < 1:
            raise ConfigurationError(f"{name} must be >= 1, got {v}", field=name, value=v)

    span = input_size - kernel
    if mode is RoundingMode.FLOOR:
        if span < 0:
            raise ConfigurationError(
                f"kernel ({kernel}) is larger than the input ({input_size}) "
                "under floor rounding",
                field="kernel",
                value=kernel,
            )
        return span // stride + 1

    out = -(-span // stride) + 1
    if out >= 1 and (out - 1) * stride >= input_size:
        out -= 1
    if out < 1:
        raise ConfigurationError(
            f"pooling produces an empty output (input={input_size}, "
            f"kernel={kernel}, stride={stride}, ceil rounding)",
            field="kernel",
            value=kernel,
        )
    return out


def compute_output_dimensions(
    input_height: int, input_width: int, config: PoolingConfig
) -> OutputDimensions:
    """
    Apply `compute_output_size` independently to the H and W axes.

    Parameters
    ----------
    input_height, input_width : int
        Spatial input size.
    config : PoolingConfig
        Kernel, stride and rounding settings.

    Returns
    -------
    OutputDimensions
    """
    return OutputDimensions(
        output_width=compute_output_size(
            input_width, config.kernel_width, config.stride_width, config.rounding_mode
        ),
        output_height=compute_output_size(
            input_height,
            config.kernel_height,
            config.stride_height,
            config.rounding_mode,
        ),
    )


def _check_nchw(x: np.ndarray, name: str) -> None:
    if x.ndim != 4:
        raise DimensionMismatchError(
            f"{name} must be a 4D NCHW array, got ndim={x.ndim}",
            actual=tuple(x.shape),
        )


def maxpool2d_forward_cpu(
    x: np.ndarray,
    config: PoolingConfig,
    *,
    return_indices: bool = True,
    rule: Optional[IPoolingRule] = None,
) -> PoolingOutput:
    """
    Max pooling forward pass (CPU, NumPy) for NCHW arrays.

    Parameters
    ----------
    x : np.ndarray
        Input of shape (N, C, H, W), any numeric dtype.
    config : PoolingConfig
        Kernel/stride/rounding settings.
    return_indices : bool, optional
        If True (default), also build the index map needed by the backward pass.
    rule : IPoolingRule, optional
        Window reduction strategy. Defaults to `MaxPoolingRule`.

    Returns
    -------
    PoolingOutput
        Pooled output of shape (N, C, H_out, W_out) and, when requested,
        the matching `IndexMap`.

    Raises
    ------
    DimensionMismatchError
        If `x` is not 4D.
    ConfigurationError
        If the configuration yields an empty output for this input.
    """
    x = np.asarray(x)
    _check_nchw(x, "x")
    rule = MaxPoolingRule() if rule is None else rule

    N, C, H, W = x.shape
    dims = compute_output_dimensions(H, W, config)
    H_out, W_out = dims.output_height, dims.output_width
    k_h, k_w = config.kernel_height, config.kernel_width
    s_h, s_w = config.stride_height, config.stride_width

    y = np.empty((N, C, H_out, W_out), dtype=x.dtype)
    argmax_idx = (
        np.empty((N, C, H_out, W_out), dtype=np.int64) if return_indices else None
    )

    # Each (n, c) plane is pooled independently.
    for n in range(N):
        for c in range(C):
            plane = x[n, c]
            plane_offset = (n * C + c) * H * W
            for i in range(H_out):
                h0 = i * s_h
                h1 = min(h0 + k_h, H)
                for j in range(W_out):
                    w0 = j * s_w
                    w1 = min(w0 + k_w, W)
                    # Rows of the window run along W, columns along H.
                    window = plane[h0:h1, w0:w1].T
                    if argmax_idx is None:
                        y[n, c, i, j] = rule.pool(window)
                        continue

                    result = rule.pool_with_index(window)
                    # Column-major local index -> absolute flat index.
                    col, row = divmod(result.index, w1 - w0)
                    argmax_idx[n, c, i, j] = plane_offset + (h0 + col) * W + (w0 + row)
                    y[n, c, i, j] = result.value

    index_map = (
        None
        if argmax_idx is None
        else IndexMap(indices=argmax_idx, input_shape=(N, C, H, W))
    )
    return PoolingOutput(output=y, index_map=index_map)


def maxpool2d_backward_cpu(
    grad_out: np.ndarray,
    index_map: IndexMap,
    *,
    x_shape: Optional[Tuple[int, int, int, int]] = None,
    overlapping: bool = True,
) -> np.ndarray:
    """
    Max pooling backward pass (CPU, NumPy), NCHW.

    Parameters
    ----------
    grad_out : np.ndarray
        Gradient with respect to the pooled output, shape (N, C, H_out, W_out).
    index_map : IndexMap
        Index map returned by the forward pass.
    x_shape : tuple[int, int, int, int], optional
        Shape of the input the gradient is computed for. Defaults to
        `index_map.input_shape`; when given, it must match it.
    overlapping : bool, optional
        Whether the forward windows could share input elements
        (`PoolingConfig.overlapping`). Pass False only for disjoint windows:
        every index is then unique and the gradient is written with a plain
        indexed assignment instead of an unbuffered scatter-add.

    Returns
    -------
    np.ndarray
        Gradient with respect to the input, shape `x_shape`, dtype of
        `grad_out`.

    Raises
    ------
    DimensionMismatchError
        If `grad_out` does not match the index map, or `x_shape` differs from
        the shape the index map was built for.

    Notes
    -----
    - Gradients are scatter-*added*: with overlapping windows several output
      cells may route to the same input element and their contributions sum.
    - Input elements that never won a window receive zero gradient.
    - The sum of the returned gradient equals the sum of `grad_out`.
    """
    grad_out = np.asarray(grad_out)
    _check_nchw(grad_out, "grad_out")
    if grad_out.shape != index_map.indices.shape:
        raise DimensionMismatchError(
            "grad_out does not match the index map",
            expected=index_map.output_shape,
            actual=tuple(grad_out.shape),
        )
    if x_shape is not None and tuple(x_shape) != tuple(index_map.input_shape):
        raise DimensionMismatchError(
            "index map was recorded for a different input shape",
            expected=tuple(index_map.input_shape),
            actual=tuple(x_shape),
        )

    shape = tuple(index_map.input_shape)
    grad_x = np.zeros(int(np.prod(shape)), dtype=grad_out.dtype)
    if overlapping:
        np.add.at(grad_x, index_map.indices.reshape(-1), grad_out.reshape(-1))
    else:
        grad_x[index_map.indices.reshape(-1)] = grad_out.reshape(-1)
    return grad_x.reshape(shape)
