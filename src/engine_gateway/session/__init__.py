from .engine import EngineSession, SessionProvider, release_in_background
from .matlab_engine import MatlabSessionProvider
from .python_engine import PythonSessionProvider

__all__ = [
    "EngineSession",
    "SessionProvider",
    "release_in_background",
    "MatlabSessionProvider",
    "PythonSessionProvider",
]
