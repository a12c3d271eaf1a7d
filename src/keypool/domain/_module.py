"""
Layer interface definitions.

This module defines the domain-level interface for bidirectional layers
using structural subtyping via `typing.Protocol`.

Any object that implements the required methods is considered a valid
layer, independent of inheritance, enabling flexible composition and clean
separation between domain contracts and infrastructure implementations.
"""

from __future__ import annotations

from typing import Any, Dict, Iterable, Protocol, runtime_checkable


@runtime_checkable
class ILayer(Protocol):
    """
    Domain-level layer interface.

    A layer is a composable unit of computation that a network container
    drives through a forward pass and a backward pass. This interface
    defines the minimal contract required for an object to participate in
    such a container.

    Notes
    -----
    - Structural typing is used instead of inheritance; implementations hold
      their own state and expose it only through these methods.
    - This interface is safe to use with `isinstance` checks due to the
      `@runtime_checkable` decorator.
    """

    def forward(self, x: Any) -> Any:
        """
        Execute the forward computation of the layer.

        Parameters
        ----------
        x : array-like
            Input batch.

        Returns
        -------
        array-like
            Output batch.
        """
        ...

    def backward(self, x: Any, grad_out: Any) -> Any:
        """
        Propagate an upstream gradient back through the layer.

        Parameters
        ----------
        x : array-like
            The input that was given to the matching forward call.
        grad_out : array-like
            Gradient with respect to the layer output.

        Returns
        -------
        array-like
            Gradient with respect to the layer input.
        """
        ...

    def compute_output_dimensions(self) -> Any:
        """
        Recompute output dimensions from the declared input dimensions.
        """
        ...

    def clone(self) -> "ILayer":
        """
        Return an independent deep copy of the layer.
        """
        ...

    def get_config(self) -> Dict[str, Any]:
        """
        Return the JSON-serializable fields that reconstruct the layer.
        """
        ...

    def parameters(self) -> Iterable[Any]:
        """
        Return the trainable parameters of the layer.
        """
        ...
