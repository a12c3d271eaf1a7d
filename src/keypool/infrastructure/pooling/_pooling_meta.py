"""
Hyperparameter containers for 2D max pooling.

- `RoundingMode`     : floor/ceil policy for the output-size computation
- `PoolingConfig`    : immutable, validated kernel/stride/rounding settings
- `OutputDimensions` : spatial output size derived from a config and an input

`PoolingConfig` is the single source of truth for a layer's hyperparameters.
Layers replace it wholesale (via `dataclasses.replace`) when a setter is
used, so a config instance never changes after validation.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from ...domain._errors import ConfigurationError


class RoundingMode(Enum):
    """
    Rounding policy applied when (input - kernel) is not a multiple of stride.
    """

    FLOOR = "floor"
    CEIL = "ceil"

    @classmethod
    def coerce(cls, value: "RoundingMode | str | bool") -> "RoundingMode":
        """
        Normalize a user-supplied rounding mode.

        Parameters
        ----------
        value : RoundingMode or str or bool
            An enum member, its string value ("floor"/"ceil", case-insensitive),
            or a bool where True means floor.

        Returns
        -------
        RoundingMode

        Raises
        ------
        ConfigurationError
            If the value names no known rounding mode.
        """
        if isinstance(value, cls):
            return value
        if isinstance(value, bool):
            return cls.FLOOR if value else cls.CEIL
        if isinstance(value, str):
            try:
                return cls(value.lower())
            except ValueError:
                pass
        raise ConfigurationError(
            f"Unknown rounding mode {value!r}; expected 'floor' or 'ceil'.",
            field="rounding_mode",
            value=value,
        )


def _check_positive_int(name: str, value: int) -> int:
    """Return `value` as an int, or raise if it is not a positive integer."""
    if isinstance(value, bool):
        raise ConfigurationError(
            f"{name} must be an integer, got {value!r}", field=name, value=value
        )
    if not isinstance(value, int):
        # numpy integers are accepted through __index__
        try:
            value = value.__index__()
        except AttributeError:
            raise ConfigurationError(
                f"{name} must be an integer, got {value!r}", field=name, value=value
            )
    if value < 1:
        raise ConfigurationError(
            f"{name} must be >= 1, got {value}", field=name, value=value
        )
    return int(value)


@dataclass(frozen=True)
class PoolingConfig:
    """
    Immutable configuration container for 2D max pooling.

    Attributes
    ----------
    kernel_width : int
        Window extent along the W (last) axis.
    kernel_height : int
        Window extent along the H axis.
    stride_width : int
        Anchor step along the W axis.
    stride_height : int
        Anchor step along the H axis.
    rounding_mode : RoundingMode
        Output-size rounding policy.
    """

    kernel_width: int
    kernel_height: int
    stride_width: int = 1
    stride_height: int = 1
    rounding_mode: RoundingMode = RoundingMode.FLOOR

    def __post_init__(self) -> None:
        for name in ("kernel_width", "kernel_height", "stride_width", "stride_height"):
            object.__setattr__(self, name, _check_positive_int(name, getattr(self, name)))
        object.__setattr__(
            self, "rounding_mode", RoundingMode.coerce(self.rounding_mode)
        )

    @property
    def floor(self) -> bool:
        """True when the floor rounding policy is active."""
        return self.rounding_mode is RoundingMode.FLOOR

    @property
    def overlapping(self) -> bool:
        """True when adjacent windows share input elements on some axis."""
        return (
            self.stride_width < self.kernel_width
            or self.stride_height < self.kernel_height
        )


@dataclass(frozen=True)
class OutputDimensions:
    """
    Spatial output size of a pooling layer.

    Attributes
    ----------
    output_width : int
        Number of window anchors along the W axis.
    output_height : int
        Number of window anchors along the H axis.
    """

    output_width: int
    output_height: int
