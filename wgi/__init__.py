__version__ = "0.1.0"

from .errors import FunctionNotFoundError, MalformedEventError, MalformedOutputError, WgiError
from .models import CanonicalRequest, CanonicalResponse, HeaderMap, MutableHeaderMap, QueryParams
from .cgi import CgiRequestAdapter
from .event import EventRequestAdapter, LambdaEvent
from .invoker import HandlerInvoker, invoke, invoke_async, select_adapter

__all__ = [
    "__version__",
    "CanonicalRequest",
    "CanonicalResponse",
    "CgiRequestAdapter",
    "EventRequestAdapter",
    "FunctionNotFoundError",
    "HandlerInvoker",
    "HeaderMap",
    "LambdaEvent",
    "MalformedEventError",
    "MalformedOutputError",
    "MutableHeaderMap",
    "QueryParams",
    "WgiError",
    "invoke",
    "invoke_async",
    "select_adapter",
]
