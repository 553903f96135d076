"""fragsync CLI: create and update WiX fragments from a directory tree."""

from ._helpers import main  # noqa: F401 (entry point)

# Import command modules to register Click commands with the main group.
from . import _create, _update  # noqa: F401
