import os
import sys
from typing import Dict, Mapping, Optional, TextIO

from . import querystring
from .errors import MalformedOutputError
from .models import CanonicalRequest, CanonicalResponse, HeaderMap, QueryParams


SERVER_SOFTWARE = "wgi"
SERVER_PROTOCOL = "HTTP/1.1"

# CGI passes these two headers without the HTTP_ prefix
_SPECIAL_VARIABLES = {
    "CONTENT_TYPE": "content-type",
    "CONTENT_LENGTH": "content-length",
}


def to_cgi_variable(header: str) -> str:
    name = header.lower()
    for var, special in _SPECIAL_VARIABLES.items():
        if name == special:
            return var
    return "HTTP_" + header.upper().replace("-", "_")


def from_cgi_variable(var: str) -> Optional[str]:
    """Return the header name carried by a meta-variable, or None if it carries none."""
    if var in _SPECIAL_VARIABLES:
        return _SPECIAL_VARIABLES[var]
    if var.startswith("HTTP_") and len(var) > 5:
        return var[5:].lower().replace("_", "-")
    return None


def _content_length(environ: Mapping[str, str]) -> int:
    try:
        return max(int(environ.get("CONTENT_LENGTH", "") or 0), 0)
    except ValueError:
        return 0


class CgiRequestAdapter:
    """Bridges a CGI invocation (environment, stdin, stdout) to the canonical model.

    The environment is injected so the adapter can be driven without a real
    process environment; by default it is a snapshot of ``os.environ`` taken at
    construction. Streams left as None resolve to ``sys.stdin``/``sys.stdout``
    when they are used.
    """

    mode = "cgi"

    def __init__(
        self,
        environ: Optional[Mapping[str, str]] = None,
        stdin: Optional[TextIO] = None,
        stdout: Optional[TextIO] = None,
    ) -> None:
        self.environ: Mapping[str, str] = dict(os.environ if environ is None else environ)
        self._stdin = stdin
        self._stdout = stdout

    @property
    def stdin(self) -> Optional[TextIO]:
        return self._stdin if self._stdin is not None else sys.stdin

    @property
    def stdout(self) -> TextIO:
        return self._stdout if self._stdout is not None else sys.stdout

    def decode(self) -> CanonicalRequest:
        env = self.environ
        headers = []
        for var, value in env.items():
            name = from_cgi_variable(var)
            if name is not None:
                headers.append((name, value))
        return CanonicalRequest(
            method=env.get("REQUEST_METHOD", ""),
            headers=HeaderMap(headers),
            query_params=QueryParams(querystring.parse(env.get("QUERY_STRING", ""))),
            body=self._read_body(),
            path=env.get("PATH_INFO", ""),
        )

    def _read_body(self) -> Optional[str]:
        stream = self.stdin
        if stream is None or getattr(stream, "closed", False):
            return None
        try:
            if stream.isatty():
                return None
        except (AttributeError, ValueError):
            pass
        # CONTENT_LENGTH counts bytes; without it there is no body
        length = _content_length(self.environ)
        if not length:
            return None
        buffer = getattr(stream, "buffer", None)
        if buffer is not None:
            data = buffer.read(length).decode("utf-8", errors="replace")
        else:
            data = stream.read(length)
        return data or None

    def encode(self, response: CanonicalResponse) -> str:
        lines = [f"Status: {response.status_code}"]
        lines.extend(f"{name}: {value}" for name, value in response.header_lines())
        text = "\n".join(lines) + "\n\n" + response.body
        out = self.stdout
        out.write(text)
        out.flush()
        return text


def build_environ(request: CanonicalRequest, script_name: str = "") -> Dict[str, str]:
    """Meta-variables for running a CGI script on behalf of ``request``."""
    environ = {
        "GATEWAY_INTERFACE": "CGI/1.1",
        "SERVER_SOFTWARE": SERVER_SOFTWARE,
        "SERVER_PROTOCOL": SERVER_PROTOCOL,
        "REQUEST_METHOD": request.method,
        "QUERY_STRING": querystring.format(request.query_params),
        "PATH_INFO": request.path,
        "SCRIPT_NAME": script_name,
    }
    for name, value in request.headers.items():
        environ[to_cgi_variable(name)] = value
    if request.body is not None:
        environ["CONTENT_LENGTH"] = str(len(request.body.encode("utf-8")))
    return environ


def parse_cgi_output(payload: str) -> CanonicalResponse:
    """Parse what a CGI script wrote to stdout.

    The header block ends at the first blank line. A ``Status`` header sets the
    status code; output with no blank line is treated as a bare body. A
    Status line without a numeric code raises MalformedOutputError.
    """
    normalized = payload.replace("\r\n", "\n")
    head, sep, body = normalized.partition("\n\n")
    if not sep:
        return CanonicalResponse(200, {}, payload)
    response = CanonicalResponse(200, {}, body)
    for line in head.split("\n"):
        name, colon, value = line.partition(":")
        if not colon:
            continue
        value = value.lstrip()
        if name.lower() == "status":
            code = value.split()[0] if value.split() else ""
            if not (code.isascii() and code.isdigit()):
                raise MalformedOutputError(f"Invalid CGI Status header: {value!r}")
            response.status_code = int(code)
        else:
            response.add_header(name, value)
    return response
