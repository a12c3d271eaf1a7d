"""
Infrastructure module base class.

This module provides a concrete `Module` base that concrete layers subclass.
It implements the conveniences shared by every layer:

- training / evaluation mode switching (`train`, `eval`, `training`)
- parameter traversal (`parameters`)
- `__call__` forwarding to `forward` for ergonomic invocation
- opt-in JSON configuration hooks (`get_config`, `from_config`)
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any, Dict


class Module:
    """
    Infrastructure base class for layers/modules.

    Attributes
    ----------
    training : bool
        True in training mode (the default). Layers may skip bookkeeping that
        only the backward pass needs when this is False.

    Notes
    -----
    - `__call__` delegates to `forward`, matching common deep learning
      framework conventions.
    """

    def __init__(self) -> None:
        """
        Initialize a module in training mode.
        """
        self.training = True

    def parameters(self) -> Iterable[Any]:
        """
        Return an iterable over trainable parameters.

        The base class owns none.
        """
        return iter(())

    def train(self, mode: bool = True) -> "Module":
        """
        Set training mode on this module.

        Returns
        -------
        Module
            `self`, to allow chaining.
        """
        self.training = bool(mode)
        return self

    def eval(self) -> "Module":
        """
        Switch to evaluation mode. Equivalent to `train(False)`.
        """
        return self.train(False)

    def forward(self, x):
        """
        Execute the forward computation of the module.

        Subclasses must implement this.
        """
        raise NotImplementedError

    def __call__(self, x):
        """
        Call the module as a function, delegating to `forward`.
        """
        return self.forward(x)

    # ------------------------------------------------------------------
    # Serialization hooks (opt-in contract)
    # ------------------------------------------------------------------
    def get_config(self) -> Dict[str, Any]:
        """
        Return a JSON-serializable configuration for this module.

        Raises
        ------
        NotImplementedError
            If the module does not support JSON serialization.
        """
        raise NotImplementedError(
            f"{self.__class__.__name__} does not implement get_config(). "
            "This module cannot be serialized to JSON."
        )

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "Module":
        """
        Reconstruct a module from a JSON configuration.

        Raises
        ------
        NotImplementedError
            If the module does not support JSON deserialization.
        """
        raise NotImplementedError(
            f"{cls.__name__} does not implement from_config(). "
            "This module cannot be deserialized from JSON."
        )
