"""
JSON (de)serialization of module architectures.

Modules opt in by decorating their class with `@register_module()` and by
implementing `get_config()` / `from_config()`. Only configuration is stored:
pooling layers own no weights, and transient state such as an index map is
never written.

Checkpoint format
-----------------
{
  "format": "keypool.json.ckpt.v1",
  "arch": {"type": "MaxPooling", "config": {...}}
}
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable, Optional, Type

CHECKPOINT_FORMAT = "keypool.json.ckpt.v1"

_MODULE_REGISTRY: dict[str, Type[Any]] = {}


def register_module(name: Optional[str] = None) -> Callable[[Type[Any]], Type[Any]]:
    """
    Decorator to register a Module class for JSON deserialization.
    """

    def deco(cls: Type[Any]) -> Type[Any]:
        key = name or cls.__name__
        _MODULE_REGISTRY[key] = cls
        return cls

    return deco


def module_to_config(m: Any) -> dict[str, Any]:
    """
    Convert a Module into a JSON-serializable configuration node.

    Node format
    -----------
    {
      "type": "MaxPooling",
      "config": {...}
    }
    """
    get_cfg = getattr(m, "get_config", None)
    cfg = get_cfg() if callable(get_cfg) else {}
    return {"type": m.__class__.__name__, "config": cfg}


def module_from_config(node: dict[str, Any]) -> Any:
    """
    Rebuild a Module from a configuration node.

    Raises
    ------
    ValueError
        If the node names a type that was never registered.
    """
    type_name = str(node["type"])
    if type_name not in _MODULE_REGISTRY:
        raise ValueError(
            f"Unknown module type '{type_name}'. Register it via @register_module."
        )

    cls = _MODULE_REGISTRY[type_name]
    cfg = node.get("config", {}) or {}

    from_cfg = getattr(cls, "from_config", None)
    if callable(from_cfg):
        return from_cfg(cfg)
    return cls(**cfg)


def save_json(module: Any, path: str | Path) -> None:
    """
    Save a module architecture into a single JSON file.

    Parameters
    ----------
    module : Module
        Module to serialize.
    path : str | Path
        Output JSON file path, e.g. "pooling.json". Parent directories are
        created as needed.
    """
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)

    payload = {
        "format": CHECKPOINT_FORMAT,
        "arch": module_to_config(module),
    }

    p.write_text(json.dumps(payload, indent=2, sort_keys=True), encoding="utf-8")


def load_json(path: str | Path) -> Any:
    """
    Load a module from a JSON checkpoint created by `save_json()`.

    Raises
    ------
    ValueError
        If the checkpoint format is unsupported or the type is unknown.
    """
    p = Path(path)
    payload = json.loads(p.read_text(encoding="utf-8"))

    fmt = payload.get("format")
    if fmt != CHECKPOINT_FORMAT:
        raise ValueError(f"Unsupported checkpoint format: {fmt!r}")

    return module_from_config(payload["arch"])
