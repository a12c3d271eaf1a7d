"""
Pooling interfaces for keypool.

This module defines **domain-level Protocols** for pooling strategies and
for the pooling layer contract consumed by a surrounding network container.

Design principles
-----------------
- A pooling *rule* is a stand-alone strategy object, not a virtual method on
  the layer. Only max pooling is provided, but other reductions (e.g.,
  average) satisfy the same `{pool, pool_with_index}` capability.
- Interfaces are expressed using `Protocol` to enable structural subtyping
  (duck typing) rather than inheritance coupling.

Notes
-----
This module contains **no NumPy or backend-specific logic** and is safe to
depend on from any layer of the architecture.
"""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from ._module import ILayer


@runtime_checkable
class IPoolingRule(Protocol):
    """
    Protocol for window reduction strategies.

    A rule receives one rectangular window (a 2D array-like) and reduces it
    to a single value. Rules must be pure functions of the window contents.
    """

    def pool(self, window: Any) -> Any:
        """
        Reduce a window to a single value.

        Parameters
        ----------
        window : array-like
            Rectangular 2D window of shape (kernel_width, kernel_height):
            rows run along the W axis, columns along H.

        Returns
        -------
        scalar
            The pooled value.
        """
        ...

    def pool_with_index(self, window: Any) -> Any:
        """
        Reduce a window and report where the selected value came from.

        Parameters
        ----------
        window : array-like
            Rectangular 2D window of shape (kernel_width, kernel_height):
            rows run along the W axis, columns along H.

        Returns
        -------
        PoolResult
            Named result carrying `value` and the window-local flat `index`
            of the selected element in column-major scan order.
        """
        ...


@runtime_checkable
class IPoolingLayer(ILayer, Protocol):
    """
    Protocol for 2D pooling layers operating on NCHW tensors.

    Shape semantics
    ---------------
    Input:
        x.shape == (N, C, H, W)

    Output:
        y.shape == (N, C, H_out, W_out)

    where, per axis, with kernel k and stride s:
        floor mode: out = floor((in - k) / s) + 1
        ceil mode : out = ceil((in - k) / s) + 1   (last window clipped)

    Design constraints
    ------------------
    - Pooling layers MUST NOT own trainable parameters.
    - Pooling layers MUST preserve the batch and channel dimensions.
    """

    @property
    def kernel_width(self) -> int:
        """Width of the pooling window (W axis)."""
        ...

    @property
    def kernel_height(self) -> int:
        """Height of the pooling window (H axis)."""
        ...

    @property
    def stride_width(self) -> int:
        """Step between window anchors along the W axis."""
        ...

    @property
    def stride_height(self) -> int:
        """Step between window anchors along the H axis."""
        ...
