"""JSON formatter: canonical command output on stdout."""
from __future__ import annotations

import json
import sys
from enum import Enum

from calltrawl.promise import Promise


def _default_serializer(obj):
    if isinstance(obj, Promise):
        return obj.raw
    if isinstance(obj, Enum):
        return obj.value
    return str(obj)


def format_json(data, stream=None) -> None:
    """Write canonical data as JSON."""
    out = stream or sys.stdout
    json.dump(data, out, indent=2, default=_default_serializer)
    out.write("\n")
