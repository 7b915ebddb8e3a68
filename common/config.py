from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, Optional

import yaml


DEFAULT_CONFIG_PATH = "config/params.yaml"

DEFAULTS: Dict[str, Any] = {
    "georef": {
        "det_tolerance": 1e-10,
        "max_control_points": 6,
    },
    "server": {"host": "0.0.0.0", "port": 8000},
    "logging": {"level": "INFO"},
}


def _merge(base: Dict[str, Any], over: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for k, v in over.items():
        if isinstance(v, dict) and isinstance(out.get(k), dict):
            out[k] = _merge(out[k], v)
        else:
            out[k] = v
    return out


def load_params(path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load params.yaml on top of DEFAULTS.

    Path precedence: explicit arg, env GEOREF_CONFIG, config/params.yaml.
    A missing file yields the defaults; a file that is not a mapping is an error.
    """
    path = path or os.environ.get("GEOREF_CONFIG") or DEFAULT_CONFIG_PATH
    if not Path(path).exists():
        return copy.deepcopy(DEFAULTS)
    with open(path, "r") as f:
        data = yaml.safe_load(f) or {}
    if not isinstance(data, dict):
        raise ValueError(f"{path}: top level must be a mapping")
    return _merge(DEFAULTS, data)
