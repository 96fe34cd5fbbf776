import json
import os
from pathlib import Path


WGI_HOME_ENV = "WGI_HOME"
WGI_MODE_ENV = "WGI_MODE"
SYSTEM_CONFIG_PATH = Path("/etc/wgi/config.json")
FUNCTION_CONFIG = "wgi.json"


def _system_config() -> dict:
    try:
        if SYSTEM_CONFIG_PATH.exists():
            return read_json(SYSTEM_CONFIG_PATH)
    except (OSError, ValueError):
        # unreadable system config behaves like no system config
        pass
    return {}


def get_home() -> Path:
    home = os.environ.get(WGI_HOME_ENV)
    if home:
        return Path(home).expanduser()
    sys_home = _system_config().get("home")
    if sys_home:
        return Path(str(sys_home)).expanduser()
    return Path.home() / ".wgi"


def default_mode() -> str:
    """Invocation mode used when none is given: WGI_MODE, then system config, then cgi."""
    mode = os.environ.get(WGI_MODE_ENV)
    if mode:
        return mode
    return str(_system_config().get("mode") or "cgi")


def functions_dir() -> Path:
    return get_home() / "functions"


def logs_dir() -> Path:
    return get_home() / "logs"


def ensure_dirs() -> None:
    functions_dir().mkdir(parents=True, exist_ok=True)
    logs_dir().mkdir(parents=True, exist_ok=True)


def fn_dir(name: str) -> Path:
    return functions_dir() / name


def fn_config_path(name: str) -> Path:
    return fn_dir(name) / FUNCTION_CONFIG


def read_json(path: Path) -> dict:
    with path.open("r", encoding="utf-8") as f:
        return json.load(f)


def write_json(path: Path, data: dict) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    tmp = path.with_suffix(path.suffix + ".tmp")
    with tmp.open("w", encoding="utf-8") as f:
        json.dump(data, f, indent=2, sort_keys=True)
        f.write("\n")
    os.replace(tmp, path)


def log_path(name: str) -> Path:
    return logs_dir() / f"{name}.log"
