"""
Pytest configuration file.

Sets up the Python path so test files can import from the python/ directory,
and provides a mocked registry client shared by the pipeline tests.
"""
import sys
from pathlib import Path
from unittest.mock import MagicMock

import pytest

# Add python directory to path for all tests
_python_dir = Path(__file__).parent.parent / 'python'
_python_dir_abs = str(_python_dir.absolute())
if _python_dir_abs not in sys.path:
    sys.path.insert(0, _python_dir_abs)


@pytest.fixture
def from_registry():
    from migrator.models import RegistryCredential

    return RegistryCredential(
        base_address="src.example.com",
        server_address="src.example.com",
        username="src-user",
        password="src-pass",
    )


@pytest.fixture
def to_registry():
    from migrator.models import RegistryCredential

    return RegistryCredential(
        base_address="dst.example.com",
        server_address="dst.example.com",
        username="dst-user",
        password="dst-pass",
    )


@pytest.fixture
def app_image():
    from migrator.models import ImageDescriptor

    return ImageDescriptor(name="app", tag="v1", from_prefix="team/", to_prefix="")


@pytest.fixture
def registry_client():
    """Registry client whose calls all succeed; pull/push return a fresh progress stream per call"""
    client = MagicMock()
    client.pull.side_effect = lambda ctx, ref, auth: iter([b'{"status":"Pulling"}\n', b'{"status":"Done"}\n'])
    client.push.side_effect = lambda ctx, ref, auth: iter([b'{"status":"Pushed"}\n'])
    client.tag.return_value = None
    client.remove.side_effect = lambda ctx, ref: [{"Untagged": ref}]
    return client
