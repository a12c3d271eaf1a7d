"""
Pooling-related exceptions for keypool.

This module defines the errors raised by the pooling rule, the dimension
calculator, the forward/backward operators and the `MaxPooling` layer.
Both errors are raised eagerly so that a failed forward/backward step never
leaves partially written outputs or a half-updated index map behind.

Taxonomy
--------
- `ConfigurationError`
    A kernel/stride value is invalid, or the configuration produces an empty
    output for the declared input size.
- `DimensionMismatchError`
    Tensors handed to the layer disagree with the shapes the layer (or its
    index map) was built for.
"""

from typing import Any, Optional, Tuple


class ConfigurationError(ValueError):
    """
    Raised when pooling hyperparameters are invalid for the declared input.

    Attributes
    ----------
    field : str or None
        Name of the offending configuration field (e.g., "kernel_width"),
        or None when the error concerns the configuration as a whole.
    value : Any
        The rejected value, if any.
    """

    def __init__(
        self, message: str, *, field: Optional[str] = None, value: Any = None
    ) -> None:
        """
        Initialize the ConfigurationError.

        Parameters
        ----------
        message : str
            Human-readable description of the problem.
        field : str, optional
            Name of the configuration field that failed validation.
        value : Any, optional
            The value that failed validation.
        """
        super().__init__(message)
        self.field = field
        self.value = value


class DimensionMismatchError(RuntimeError):
    """
    Raised when a tensor shape disagrees with the shape the layer expects.

    Typical triggers are a backward pass whose upstream gradient does not
    match the output of the last forward pass, or a backward pass attempted
    before any forward pass recorded an index map.
    """

    def __init__(
        self,
        message: str,
        *,
        expected: Optional[Tuple[int, ...]] = None,
        actual: Optional[Tuple[int, ...]] = None,
    ) -> None:
        """
        Initialize the DimensionMismatchError.

        Parameters
        ----------
        message : str
            Human-readable description of the mismatch.
        expected : tuple[int, ...], optional
            The shape that was expected.
        actual : tuple[int, ...], optional
            The shape that was received.
        """
        if expected is not None or actual is not None:
            message = f"{message} (expected {expected}, got {actual})"
        super().__init__(message)
        self.expected = expected
        self.actual = actual
