import argparse
import json
import os
import shutil
import sys
import time
from pathlib import Path
from typing import Any, Dict, Optional

from . import __version__
from .errors import FunctionNotFoundError, MalformedEventError
from .invoker import MODES, HandlerInvoker, select_adapter
from .runtime import load_handler, load_spec, request_summary, response_summary, write_log
from .utils import default_mode, ensure_dirs, functions_dir, fn_dir, fn_config_path, read_json, write_json, log_path


PY_TEMPLATE_REL = Path("templates/python/main.py")

CGI_SH_TEMPLATE = """#!/usr/bin/env bash
set -euo pipefail
# CGI script: request in REQUEST_METHOD/QUERY_STRING/HTTP_* and stdin
echo "Content-Type: text/plain"
echo
echo "hello from exec (${REQUEST_METHOD:-?} ${QUERY_STRING:-})"
"""

LAMBDA_SH_TEMPLATE = """#!/usr/bin/env bash
set -euo pipefail
# Read the event JSON from stdin and echo a JSON response envelope
cat > /dev/null
echo '{"statusCode":200, "headers":{"Content-Type":["text/plain"]}, "body":"hello from exec"}'
"""


def cmd_create(args: argparse.Namespace) -> int:
    ensure_dirs()
    name: str = args.name
    lang: str = args.lang
    mode: str = args.mode or default_mode()
    base = fn_dir(name)
    if base.exists():
        print(f"Function '{name}' already exists at {base}", file=sys.stderr)
        return 2
    base.mkdir(parents=True, exist_ok=False)

    cfg: Dict[str, Any] = {
        "name": name,
        "mode": mode,
        "language": lang,
        "logging": (not args.no_logs),
    }
    if lang == "python":
        cfg["entrypoint"] = "main.py:handler"
        tpl_path = Path(__file__).parent / PY_TEMPLATE_REL
        shutil.copy2(tpl_path, base / "main.py")
    else:
        cfg["command"] = args.command or "./handler.sh"
        sh = base / "handler.sh"
        sh.write_text(LAMBDA_SH_TEMPLATE if mode == "lambda" else CGI_SH_TEMPLATE, encoding="utf-8")
        sh.chmod(0o755)

    write_json(fn_config_path(name), cfg)
    print(f"Created {mode} function '{name}' in {base}")
    if mode == "lambda":
        print(f"Try it: echo '{{\"httpMethod\": \"GET\"}}' | wgi run {name}")
    else:
        print(f"Try it: REQUEST_METHOD=GET QUERY_STRING='message=hi' wgi run {name} < /dev/null")
    return 0


def cmd_destroy(args: argparse.Namespace) -> int:
    name: str = args.name
    base = fn_dir(name)
    if not base.exists():
        print(f"Function '{name}' does not exist", file=sys.stderr)
        return 2
    shutil.rmtree(base)
    # keep logs unless --purge-logs
    if args.purge_logs:
        lp = log_path(name)
        if lp.exists():
            lp.unlink()
    print(f"Destroyed function '{name}'")
    return 0


def cmd_list(_: argparse.Namespace) -> int:
    ensure_dirs()
    rows = []
    for p in sorted(functions_dir().glob("*")):
        cfg_path = fn_config_path(p.name)
        if not p.is_dir() or not cfg_path.exists():
            continue
        cfg = read_json(cfg_path)
        rows.append((
            cfg.get("name", p.name),
            cfg.get("mode", "cgi"),
            cfg.get("language", "?"),
            "true" if cfg.get("logging", True) else "false",
        ))
    if not rows:
        print("No functions found. Create one with: wgi create <name>")
        return 0
    headers = ("NAME", "MODE", "LANG", "LOGGING")
    widths = [max(len(headers[i]), max(len(row[i]) for row in rows)) for i in range(len(headers))]

    def fmt_row(row) -> str:
        return "  ".join(cell.ljust(widths[i]) for i, cell in enumerate(row)).rstrip()

    print(fmt_row(headers))
    for row in rows:
        print(fmt_row(row))
    return 0


def _read_event(source: Optional[str]) -> Any:
    if source and source != "-":
        return read_json(Path(source))
    return json.loads(sys.stdin.read())


def cmd_run(args: argparse.Namespace) -> int:
    """Host a single invocation of a function.

    cgi mode reads the process environment and stdin and writes CGI output to
    stdout; lambda mode reads an event JSON (file or stdin) and prints the
    response envelope as JSON.
    """
    name: str = args.name
    try:
        spec = load_spec(name)
    except FunctionNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 2
    mode = args.mode or spec.mode
    if mode not in MODES:
        print(f"Unsupported mode: {mode}", file=sys.stderr)
        return 2

    event = None
    if mode == "lambda":
        try:
            event = _read_event(args.event)
        except (OSError, ValueError) as e:
            print(f"Cannot read event: {e}", file=sys.stderr)
            return 2

    spec.mode = mode
    handler = load_handler(spec, fn_dir(name))
    invoker = HandlerInvoker(select_adapter(mode, event=event))
    record: Dict[str, Any] = {"function": spec.name, "mode": mode, "time": time.time()}
    rc = 0
    try:
        output = invoker.invoke(handler)
        if mode == "lambda":
            print(json.dumps(output))
    except MalformedEventError as e:
        record["error"] = str(e)
        print(f"Error: {e}", file=sys.stderr)
        rc = 2
    except Exception as e:
        record["error"] = f"{type(e).__name__}: {e}"
        print(f"Error: handler failed: {record['error']}", file=sys.stderr)
        rc = 1
    finally:
        if invoker.request is not None:
            record["request"] = request_summary(invoker.request)
        if invoker.response is not None:
            record["response"] = response_summary(invoker.response)
        if spec.logging:
            try:
                write_log(name, record)
            except OSError as e:
                print(f"Warning: cannot write log for '{name}': {e}", file=sys.stderr)
    return rc


def cmd_logs(args: argparse.Namespace) -> int:
    name: str = args.name
    lp = log_path(name)
    if not lp.exists():
        print(f"No logs for '{name}' yet at {lp}")
        return 0
    if not args.follow:
        print(lp.read_text(encoding="utf-8"), end="")
        return 0
    with lp.open("r", encoding="utf-8") as f:
        f.seek(0, os.SEEK_END)
        try:
            while True:
                line = f.readline()
                if not line:
                    time.sleep(0.5)
                    continue
                print(line, end="")
        except KeyboardInterrupt:
            return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="wgi", description="Run one handler under CGI or lambda-style invocation")
    p.add_argument("--version", action="version", version=f"wgi {__version__}")
    sub = p.add_subparsers(dest="cmd", required=True)

    c = sub.add_parser("create", help="Create a new function")
    c.add_argument("name")
    c.add_argument("--lang", choices=["python", "exec"], default="python")
    c.add_argument("--mode", choices=MODES, default=None, help="Invocation mode (default: WGI_MODE or cgi)")
    c.add_argument("--command", help="For exec: command to run", default=None)
    c.add_argument("--no-logs", action="store_true", help="Disable logging for this function")
    c.set_defaults(func=cmd_create)

    d = sub.add_parser("destroy", help="Destroy a function")
    d.add_argument("name")
    d.add_argument("--purge-logs", action="store_true", help="Also remove logs for this function")
    d.set_defaults(func=cmd_destroy)

    l = sub.add_parser("list", help="List functions")
    l.set_defaults(func=cmd_list)

    r = sub.add_parser("run", help="Invoke a function once in the current process")
    r.add_argument("name")
    r.add_argument("--mode", choices=MODES, default=None, help="Override the function's invocation mode")
    r.add_argument("--event", default=None, help="lambda mode: event JSON file ('-' or omitted reads stdin)")
    r.set_defaults(func=cmd_run)

    g = sub.add_parser("logs", help="Show or follow function logs")
    g.add_argument("name")
    g.add_argument("-f", "--follow", action="store_true")
    g.set_defaults(func=cmd_logs)

    return p


def main(argv: Optional[list] = None) -> int:
    ensure_dirs()
    parser = build_parser()
    args = parser.parse_args(argv)
    return int(args.func(args))


if __name__ == "__main__":
    raise SystemExit(main())
