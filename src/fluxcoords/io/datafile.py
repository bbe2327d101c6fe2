"""
Named-variable sink for diagnostic output.
"""

import json
import logging
from collections import OrderedDict

import numpy as np

from ..mesh.field import Field

logger = logging.getLogger('fluxcoords.io')


class Datafile:
    """Collects named fields and scalars, then writes them to an .npz archive."""

    def __init__(self):
        self._vars = OrderedDict()

    def add(self, value, name, save_repeat=False):
        if name in self._vars:
            raise ValueError(f"Variable '{name}' already added to datafile")
        self._vars[name] = (value, bool(save_repeat))

    def __contains__(self, name):
        return name in self._vars

    def __len__(self):
        return len(self._vars)

    def names(self):
        return list(self._vars)

    def get(self, name):
        """Current value of a variable as a numpy array."""
        value, _ = self._vars[name]
        if isinstance(value, Field):
            return np.array(value.data)
        return np.asarray(value, dtype=float)

    def write(self, path):
        """Write every variable, plus a JSON index of locations and repeat flags."""
        arrays = {}
        index = {}
        for name, (value, save_repeat) in self._vars.items():
            if value is None:
                continue
            arrays[name] = self.get(name)
            index[name] = {
                "save_repeat": save_repeat,
                "location": value.location.value if isinstance(value, Field) else None,
            }
        arrays["__index__"] = np.array(json.dumps(index))
        np.savez(path, **arrays)
        logger.info("Datafile written", extra={"extra_data": {"path": str(path), "nvars": len(index)}})
