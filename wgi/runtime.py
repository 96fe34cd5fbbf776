import functools
import importlib.util
import inspect
import json
import os
import subprocess
import sys
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from .cgi import build_environ, parse_cgi_output
from .errors import FunctionNotFoundError, MalformedEventError, MalformedOutputError
from .event import build_event, parse_envelope
from .models import CanonicalRequest, CanonicalResponse
from .utils import fn_config_path, read_json, log_path


DEFAULT_TIMEOUT = 120


@dataclass
class FunctionSpec:
    name: str
    mode: str = "cgi"                 # "cgi" or "lambda"
    language: str = "python"          # "python" or "exec"
    entrypoint: Optional[str] = None  # e.g., "main.py:handler" for python
    command: Optional[str] = None     # e.g., "./handler.sh"
    logging: bool = True
    timeout: float = DEFAULT_TIMEOUT


_PY_CACHE_LOCK = threading.Lock()
_PY_MODULE_CACHE: Dict[str, Tuple[float, Callable]] = {}


def load_spec(name: str) -> FunctionSpec:
    path = fn_config_path(name)
    if not path.exists():
        raise FunctionNotFoundError(f"Function '{name}' does not exist")
    cfg = read_json(path)
    return FunctionSpec(
        name=cfg.get("name", name),
        mode=cfg.get("mode", "cgi"),
        language=cfg.get("language", "python"),
        entrypoint=cfg.get("entrypoint"),
        command=cfg.get("command"),
        logging=bool(cfg.get("logging", True)),
        timeout=float(cfg.get("timeout", DEFAULT_TIMEOUT)),
    )


def _import_python_handler(base: Path, entrypoint: str) -> Callable:
    module_file, _, func_name = entrypoint.partition(":")
    if not func_name:
        raise RuntimeError("Invalid entrypoint; expected 'module.py:handler'")
    file_path = base / module_file
    mtime = file_path.stat().st_mtime
    cache_key = str(file_path)
    with _PY_CACHE_LOCK:
        cached = _PY_MODULE_CACHE.get(cache_key)
        if cached and cached[0] == mtime:
            return cached[1]
        spec = importlib.util.spec_from_file_location(f"wgi_fn_{abs(hash(cache_key))}", str(file_path))
        if spec is None or spec.loader is None:
            raise RuntimeError(f"Cannot load module from {file_path}")
        mod = importlib.util.module_from_spec(spec)
        sys.modules[spec.name] = mod
        spec.loader.exec_module(mod)
        handler = getattr(mod, func_name)
        _PY_MODULE_CACHE[cache_key] = (mtime, handler)
        return handler


def normalize_result(result: Any) -> CanonicalResponse:
    """Turn whatever a python handler returned into a CanonicalResponse.

    Accepted: CanonicalResponse, ``(status, headers, body)`` tuples, envelope
    dicts with ``statusCode``, other JSON-serializable dicts, str and bytes.
    """
    if isinstance(result, CanonicalResponse):
        return result
    if isinstance(result, tuple) and len(result) == 3:
        status, headers, body = result
        if isinstance(body, (bytes, bytearray)):
            body = bytes(body).decode("utf-8", errors="replace")
        return CanonicalResponse(int(status), headers or {}, "" if body is None else str(body))
    if isinstance(result, dict):
        if "statusCode" in result:
            headers = dict(result.get("headers") or {})
            body = result.get("body", "")
            if isinstance(body, (dict, list)):
                headers = {"Content-Type": "application/json", **headers}
            return parse_envelope({**result, "statusCode": int(result["statusCode"]), "headers": headers, "body": body})
        return CanonicalResponse(200, {"Content-Type": "application/json"}, json.dumps(result))
    if isinstance(result, (bytes, bytearray)):
        return CanonicalResponse(200, {"Content-Type": "application/octet-stream"}, bytes(result).decode("utf-8", errors="replace"))
    if isinstance(result, str):
        return CanonicalResponse(200, {"Content-Type": "text/plain"}, result)
    return CanonicalResponse(200, {"Content-Type": "text/plain"}, str(result))


def _normalizing(handler: Callable) -> Callable:
    if inspect.iscoroutinefunction(handler):
        @functools.wraps(handler)
        async def async_wrapper(request: CanonicalRequest) -> CanonicalResponse:
            return normalize_result(await handler(request))
        return async_wrapper

    @functools.wraps(handler)
    def wrapper(request: CanonicalRequest) -> CanonicalResponse:
        return normalize_result(handler(request))
    return wrapper


def exec_handler(command: str, base_dir: Path, mode: str = "cgi", timeout: float = DEFAULT_TIMEOUT) -> Callable:
    """Wrap an external command as a canonical handler.

    In cgi mode the command runs as a CGI script: request meta-variables in its
    environment, the body on stdin, its stdout parsed as CGI output. In lambda
    mode the event JSON is written to stdin and stdout must be an envelope.
    """

    def handler(request: CanonicalRequest) -> CanonicalResponse:
        env = os.environ.copy()
        if mode == "lambda":
            input_str = json.dumps(build_event(request))
        else:
            env.update(build_environ(request, script_name=command))
            input_str = request.body or ""
        proc = subprocess.Popen(
            command,
            shell=True,
            stdin=subprocess.PIPE,
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            cwd=str(base_dir),
            env=env,
            encoding="utf-8",
        )
        try:
            stdout, stderr = proc.communicate(input=input_str, timeout=timeout)
        except subprocess.TimeoutExpired:
            proc.kill()
            proc.communicate()
            return CanonicalResponse(504, {"Content-Type": "text/plain"}, f"Error: timed out after {timeout}s")
        if proc.returncode != 0:
            return CanonicalResponse(500, {"Content-Type": "text/plain"}, f"Error: {stderr}")
        if mode != "lambda":
            try:
                return parse_cgi_output(stdout)
            except MalformedOutputError as e:
                return CanonicalResponse(502, {"Content-Type": "text/plain"}, f"Error: {e}")
        try:
            return parse_envelope(json.loads(stdout))
        except (ValueError, MalformedEventError):
            # not an envelope; treat stdout as the body
            return CanonicalResponse(200, {"Content-Type": "text/plain"}, stdout)

    return handler


def load_handler(spec: FunctionSpec, base_dir: Path) -> Callable:
    if spec.language == "python":
        if not spec.entrypoint:
            raise RuntimeError("Python function missing entrypoint")
        return _normalizing(_import_python_handler(base_dir, spec.entrypoint))
    elif spec.language == "exec":
        if not spec.command:
            raise RuntimeError("Exec function missing command")
        return exec_handler(spec.command, base_dir, mode=spec.mode, timeout=spec.timeout)
    else:
        raise RuntimeError(f"Unsupported language: {spec.language}")


def request_summary(request: CanonicalRequest) -> Dict[str, Any]:
    return {
        "method": request.method,
        "path": request.path,
        "query": dict(request.query_params.items()),
        "headers": dict(request.headers.items()),
        "body": request.body,
    }


def response_summary(response: CanonicalResponse) -> Dict[str, Any]:
    return {
        "status": response.status_code,
        "headers": {name: list(values) for name, values in response.headers.items()},
        "bodyPreview": response.body[:256],
    }


def write_log(name: str, record: Dict[str, Any]) -> None:
    path = log_path(name)
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("a", encoding="utf-8") as f:
        f.write(json.dumps(record, sort_keys=True))
        f.write("\n")
