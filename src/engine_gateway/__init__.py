from .config import GatewaySettings, load_settings
from .dispatcher import ROUTES, RequestDispatcher
from .errors import DecodeError, EngineExecutionError, EngineUnavailable, GatewayError
from .executor import OperationExecutor
from .server import build_provider, create_app, run
from .session import MatlabSessionProvider, PythonSessionProvider

__all__ = [
    "GatewaySettings",
    "load_settings",
    "ROUTES",
    "RequestDispatcher",
    "DecodeError",
    "EngineExecutionError",
    "EngineUnavailable",
    "GatewayError",
    "OperationExecutor",
    "build_provider",
    "create_app",
    "run",
    "MatlabSessionProvider",
    "PythonSessionProvider",
]
