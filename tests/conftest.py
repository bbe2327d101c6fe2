import os
import sys

import pytest

# Add src and tests to path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..', 'src')))
sys.path.insert(0, os.path.abspath(os.path.dirname(__file__)))

from geom_test_utils import flat_mesh  # noqa: E402


@pytest.fixture
def mesh():
    return flat_mesh()


@pytest.fixture
def coords(mesh):
    return mesh.get_coordinates()
