from .config import FunctionConfig, FunctionConfigDict
from .function import Function

__all__ = ["Function", "FunctionConfig", "FunctionConfigDict"]
