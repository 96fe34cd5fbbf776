import asyncio
import inspect
from typing import Any, Awaitable, Callable, Mapping, Optional, TextIO, Union

from .cgi import CgiRequestAdapter
from .event import EventRequestAdapter
from .models import CanonicalRequest, CanonicalResponse
from .utils import default_mode


Handler = Callable[[CanonicalRequest], Union[CanonicalResponse, Awaitable[CanonicalResponse]]]
Adapter = Union[CgiRequestAdapter, EventRequestAdapter]

MODES = ("cgi", "lambda")


def select_adapter(
    mode: Optional[str] = None,
    event: Optional[Mapping[str, Any]] = None,
    environ: Optional[Mapping[str, str]] = None,
    stdin: Optional[TextIO] = None,
    stdout: Optional[TextIO] = None,
) -> Adapter:
    """Pick the adapter for the runtime we are embedded in.

    Only ``"lambda"`` selects the event adapter; any other mode is CGI.
    """
    mode = mode or default_mode()
    if mode == "lambda":
        return EventRequestAdapter(event)
    return CgiRequestAdapter(environ, stdin=stdin, stdout=stdout)


async def _await(result: Awaitable[CanonicalResponse]) -> CanonicalResponse:
    return await result


class HandlerInvoker:
    """Runs one decode -> handle -> encode cycle.

    The handler is called exactly once. Whatever it raises propagates to the
    caller untouched; there is no retry and no timeout here.
    """

    def __init__(self, adapter: Adapter) -> None:
        self.adapter = adapter
        # last request/response seen, for host-side logging
        self.request: Optional[CanonicalRequest] = None
        self.response: Optional[CanonicalResponse] = None

    def invoke(self, handler: Handler) -> Any:
        self.request = request = self.adapter.decode()
        response = handler(request)
        if inspect.isawaitable(response):
            response = asyncio.run(_await(response))
        self.response = response
        return self.adapter.encode(response)

    async def invoke_async(self, handler: Handler) -> Any:
        self.request = request = self.adapter.decode()
        response = handler(request)
        if inspect.isawaitable(response):
            response = await response
        self.response = response
        return self.adapter.encode(response)


def invoke(adapter: Adapter, handler: Handler) -> Any:
    return HandlerInvoker(adapter).invoke(handler)


async def invoke_async(adapter: Adapter, handler: Handler) -> Any:
    return await HandlerInvoker(adapter).invoke_async(handler)
