import io
import json
import os
import sys
import tempfile
from pathlib import Path
from contextlib import contextmanager

import wgi.cli as cli
from wgi import CanonicalRequest, CanonicalResponse
from wgi.runtime import exec_handler, load_handler, load_spec, normalize_result, write_log
from wgi.utils import fn_config_path, fn_dir, log_path, read_json, write_json


def run_cli(args):
    print(f"[wgi CLI] $ wgi {' '.join(args)}")
    rc = cli.main(args)
    print(f"[wgi CLI] exit code: {rc}\n")
    return rc


@contextmanager
def set_env(env: dict):
    old = {k: os.environ.get(k) for k in env}
    try:
        for k, v in env.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = str(v)
        yield
    finally:
        for k, v in old.items():
            if v is None:
                os.environ.pop(k, None)
            else:
                os.environ[k] = v


@contextmanager
def temp_home():
    with tempfile.TemporaryDirectory() as td:
        with set_env({"WGI_HOME": td, "WGI_MODE": None}):
            yield Path(td)


def _read_log(name):
    return [json.loads(line) for line in log_path(name).read_text(encoding="utf-8").splitlines()]


def test_create_list_and_load_python_function(capsys):
    with temp_home() as home:
        assert run_cli(["list"]) == 0
        assert "No functions found" in capsys.readouterr().out

        assert run_cli(["create", "hello", "--mode", "lambda"]) == 0
        assert (home / "functions" / "hello" / "main.py").exists()
        assert run_cli(["create", "hello"]) == 2

        capsys.readouterr()
        assert run_cli(["list"]) == 0
        out = capsys.readouterr().out
        assert "NAME" in out and "MODE" in out
        assert "hello" in out and "lambda" in out

        spec = load_spec("hello")
        assert spec.mode == "lambda"
        assert spec.entrypoint == "main.py:handler"
        handler = load_handler(spec, fn_dir("hello"))
        response = handler(CanonicalRequest(method="GET", headers={"User-Agent": "pytest"}))
        assert response.status_code == 200
        data = json.loads(response.body)
        assert data == {"message": "Unset", "userAgent": "pytest"}


def test_run_lambda_mode_prints_envelope_and_logs(capsys):
    with temp_home() as home:
        assert run_cli(["create", "hello", "--mode", "lambda"]) == 0
        event_file = home / "event.json"
        event_file.write_text(json.dumps({
            "httpMethod": "GET",
            "headers": {"User-Agent": "curl/8.0"},
            "queryStringParameters": {"message": "hi"},
        }), encoding="utf-8")
        capsys.readouterr()

        assert cli.main(["run", "hello", "--event", str(event_file)]) == 0
        envelope = json.loads(capsys.readouterr().out)
        assert envelope["statusCode"] == 200
        assert envelope["headers"] == {"Content-Type": ["application/json"]}
        assert json.loads(envelope["body"]) == {"message": "hi", "userAgent": "curl/8.0"}

        records = _read_log("hello")
        assert len(records) == 1
        assert records[0]["mode"] == "lambda"
        assert records[0]["request"]["query"] == {"message": "hi"}
        assert records[0]["response"]["status"] == 200


def test_run_lambda_mode_malformed_event(capsys, monkeypatch):
    with temp_home():
        assert run_cli(["create", "hello", "--mode", "lambda"]) == 0
        monkeypatch.setattr(sys, "stdin", io.StringIO(json.dumps({"headers": {}})))
        capsys.readouterr()
        assert cli.main(["run", "hello"]) == 2
        assert "httpMethod" in capsys.readouterr().err
        assert "error" in _read_log("hello")[0]


def test_run_cgi_mode_writes_cgi_output(capsys, monkeypatch):
    with temp_home():
        assert run_cli(["create", "hello", "--mode", "cgi", "--no-logs"]) == 0
        capsys.readouterr()
        monkeypatch.setattr(sys, "stdin", io.StringIO(""))
        with set_env({"REQUEST_METHOD": "GET", "QUERY_STRING": "message=cgi", "HTTP_USER_AGENT": "lynx"}):
            assert cli.main(["run", "hello"]) == 0
        out = capsys.readouterr().out
        head, _, body = out.partition("\n\n")
        assert head.splitlines() == ["Status: 200", "Content-Type: application/json"]
        assert json.loads(body) == {"message": "cgi", "userAgent": "lynx"}
        assert not log_path("hello").exists()


def test_run_handler_failure_is_reported(capsys):
    with temp_home() as home:
        assert run_cli(["create", "broken", "--mode", "lambda"]) == 0
        (home / "functions" / "broken" / "main.py").write_text(
            "def handler(request):\n    raise ValueError('kaboom')\n", encoding="utf-8"
        )
        event_file = home / "event.json"
        event_file.write_text(json.dumps({"httpMethod": "GET"}), encoding="utf-8")
        capsys.readouterr()
        assert cli.main(["run", "broken", "--event", str(event_file)]) == 1
        captured = capsys.readouterr()
        assert captured.out == ""
        assert "kaboom" in captured.err
        record = _read_log("broken")[0]
        assert record["error"] == "ValueError: kaboom"
        assert record["request"]["method"] == "GET"
        assert "response" not in record


def test_run_unknown_function():
    with temp_home():
        assert run_cli(["run", "missing"]) == 2


def test_exec_function_lambda_mode(capsys):
    with temp_home() as home:
        assert run_cli(["create", "echo", "--lang", "exec", "--mode", "lambda"]) == 0
        script = home / "functions" / "echo" / "echo.py"
        script.write_text(
            "import json, sys\n"
            "event = json.load(sys.stdin)\n"
            "print(json.dumps({'statusCode': 200, 'headers': {'X-Method': event['httpMethod']},"
            " 'body': event['queryStringParameters'].get('message', 'Unset')}))\n",
            encoding="utf-8",
        )
        cfg = read_json(fn_config_path("echo"))
        cfg["command"] = f"{sys.executable} echo.py"
        write_json(fn_config_path("echo"), cfg)

        event_file = home / "event.json"
        event_file.write_text(json.dumps({"httpMethod": "PATCH", "queryStringParameters": {"message": "yo"}}), encoding="utf-8")
        capsys.readouterr()
        assert cli.main(["run", "echo", "--event", str(event_file)]) == 0
        envelope = json.loads(capsys.readouterr().out)
        assert envelope == {"statusCode": 200, "headers": {"X-Method": ["PATCH"]}, "body": "yo"}


def test_exec_handler_cgi_mode(tmp_path):
    script = tmp_path / "script.py"
    script.write_text(
        "import os, sys\n"
        "body = sys.stdin.read()\n"
        "sys.stdout.write('Status: 201\\nContent-Type: text/plain\\n\\n')\n"
        "sys.stdout.write(os.environ['REQUEST_METHOD'] + ' ' + os.environ['QUERY_STRING'] + ' ' + body)\n",
        encoding="utf-8",
    )
    handler = exec_handler(f"{sys.executable} script.py", tmp_path, mode="cgi")
    response = handler(CanonicalRequest(method="POST", query_params={"a": "1"}, body="data"))
    assert response.status_code == 201
    assert response.headers["content-type"] == ["text/plain"]
    assert response.body == "POST a=1 data"


def test_exec_handler_failure_becomes_500(tmp_path):
    handler = exec_handler(f"{sys.executable} -c \"import sys; sys.exit('bad')\"", tmp_path, mode="lambda")
    response = handler(CanonicalRequest(method="GET"))
    assert response.status_code == 500
    assert "bad" in response.body


def test_normalize_result_variants():
    passthrough = CanonicalResponse(204, {}, "")
    assert normalize_result(passthrough) is passthrough

    envelope = normalize_result({"statusCode": 200, "headers": {"X-A": "1"}, "body": {"ok": True}})
    assert envelope.headers["content-type"] == ["application/json"]
    assert json.loads(envelope.body) == {"ok": True}

    plain = normalize_result({"ok": True})
    assert plain.status_code == 200 and json.loads(plain.body) == {"ok": True}

    assert normalize_result("hi").headers["Content-Type"] == ["text/plain"]
    assert normalize_result(b"\x00").headers["Content-Type"] == ["application/octet-stream"]
    assert normalize_result((418, {"X-Tea": "pot"}, b"short")).status_code == 418


def test_destroy_removes_function_and_optional_logs():
    with temp_home():
        assert run_cli(["create", "hello"]) == 0
        base = fn_dir("hello")
        assert base.exists()

        write_log("hello", {"msg": "test"})
        lp = log_path("hello")
        assert lp.exists()

        # logs survive a plain destroy
        assert run_cli(["destroy", "hello"]) == 0
        assert not base.exists()
        assert lp.exists()

        assert run_cli(["create", "hello"]) == 0
        write_log("hello", {"msg": "again"})
        assert run_cli(["destroy", "hello", "--purge-logs"]) == 0
        assert not fn_dir("hello").exists()
        assert not log_path("hello").exists()
        assert run_cli(["destroy", "hello"]) == 2


def test_create_uses_wgi_mode_default():
    with temp_home():
        with set_env({"WGI_MODE": "lambda"}):
            assert run_cli(["create", "hello"]) == 0
        assert load_spec("hello").mode == "lambda"


def test_exec_handler_cgi_mode_passes_utf8_body_by_byte_count(tmp_path):
    script = tmp_path / "script.py"
    script.write_text(
        "import os, sys\n"
        "body = sys.stdin.buffer.read(int(os.environ['CONTENT_LENGTH'])).decode('utf-8')\n"
        "sys.stdout.buffer.write(('Content-Type: text/plain\\n\\n' + body).encode('utf-8'))\n",
        encoding="utf-8",
    )
    handler = exec_handler(f"{sys.executable} script.py", tmp_path, mode="cgi")
    response = handler(CanonicalRequest(method="POST", body="héllo wörld"))
    assert response.status_code == 200
    assert response.body == "héllo wörld"


def test_exec_handler_cgi_mode_bad_status_becomes_502(tmp_path):
    script = tmp_path / "script.py"
    script.write_text("print('Status: OK')\nprint()\nprint('body')\n", encoding="utf-8")
    handler = exec_handler(f"{sys.executable} script.py", tmp_path, mode="cgi")
    response = handler(CanonicalRequest(method="GET"))
    assert response.status_code == 502
    assert response.headers["content-type"] == ["text/plain"]
    assert "Status" in response.body


def test_logs_command_prints_log(capsys):
    with temp_home():
        assert cli.main(["logs", "hello"]) == 0
        assert "No logs for 'hello'" in capsys.readouterr().out

        write_log("hello", {"msg": "first"})
        assert cli.main(["logs", "hello"]) == 0
        lines = capsys.readouterr().out.splitlines()
        assert [json.loads(line) for line in lines] == [{"msg": "first"}]


def test_logs_follow_prints_new_lines(capsys, monkeypatch):
    with temp_home():
        write_log("hello", {"msg": "old"})
        sleeps = []

        def fake_sleep(seconds):
            sleeps.append(seconds)
            if len(sleeps) == 1:
                write_log("hello", {"msg": "new"})
            else:
                raise KeyboardInterrupt

        monkeypatch.setattr(cli.time, "sleep", fake_sleep)
        assert cli.main(["logs", "hello", "-f"]) == 0
        out = capsys.readouterr().out
        assert [json.loads(line) for line in out.splitlines()] == [{"msg": "new"}]
