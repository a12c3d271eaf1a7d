"""
Max pooling rule.

`MaxPoolingRule` reduces one receptive window to its maximum. It is a
stand-alone strategy object used by the forward operator in
`ops.pool2d_cpu`; it satisfies the `IPoolingRule` protocol.

Scan order
----------
`pool_with_index` scans the window **column-major** (down each column, then
across columns). For a window with `rows` rows, element `(r, c)` has local
index `c * rows + r`. When several elements share the maximum, the first one
in that order wins, so gradient routing is deterministic.

The forward operator hands over windows shaped (kernel_width, kernel_height),
so the scan runs along W first and then steps down H.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import numpy as np


@dataclass(frozen=True)
class PoolResult:
    """
    Named result of `pool_with_index`.

    Attributes
    ----------
    value : scalar
        The selected (maximum) value, with the window's dtype.
    index : int
        Window-local flat position of `value` in column-major scan order.
    """

    value: Any
    index: int


class MaxPoolingRule:
    """
    The max pooling rule: take the maximum value within the receptive window.
    """

    def pool(self, window: np.ndarray) -> Any:
        """
        Return the maximum value within the window.

        Parameters
        ----------
        window : np.ndarray
            2D window of shape (rows, cols). May be a view into a larger array.

        Returns
        -------
        scalar
            Maximum element, with the window's dtype.
        """
        return np.max(window)

    def pool_with_index(self, window: np.ndarray) -> PoolResult:
        """
        Return the maximum value and the position of its first occurrence.

        Parameters
        ----------
        window : np.ndarray
            2D window of shape (rows, cols).

        Returns
        -------
        PoolResult
            `value` is the maximum, `index` its column-major local index.
        """
        scan = np.asarray(window).ravel(order="F")
        index = int(np.argmax(scan))
        return PoolResult(value=scan[index], index=index)

    def __repr__(self) -> str:
        return f"{type(self).__name__}()"
