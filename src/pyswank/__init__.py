"""pyswank.

A SWANK protocol backend that lets an editor drive a long-lived Python
process: evaluate code, exchange program I/O, and debug failures in nested
debugger levels.
"""

__version__ = "0.1.0"
__all__ = [
    "CallChain",
    "Dispatcher",
    "PythonRuntime",
    "Session",
    "SwankCommands",
    "SwankServer",
    "decode",
    "encode",
    "normalize",
]

from .call_chain import CallChain
from .commands import SwankCommands
from .dispatcher import Dispatcher
from .framing import decode, encode
from .literals import normalize
from .runtime import PythonRuntime
from .server import SwankServer
from .session import Session
