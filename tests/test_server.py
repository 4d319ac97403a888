import json
import subprocess
import sys

import pytest

from sops_context.server import EXIT_NOT_MANAGED, build_parser, main


def run_cli(*args, input_text=None):
    return subprocess.run(
        [sys.executable, "-m", "sops_context.server", *args],
        input=input_text.encode("utf-8") if input_text is not None else None,
        capture_output=True,
    )


def test_serve_answers_on_stdout_and_logs_on_stderr(settings_file):
    lines = "\n".join(
        [
            json.dumps({"jsonrpc": "2.0", "id": "1", "method": "encrypt", "params": {"text": "a: b\n"}}),
            "garbage",
            json.dumps({"jsonrpc": "2.0", "id": "2", "method": "nope", "params": {}}),
        ]
    ) + "\n"
    result = run_cli("--config", str(settings_file), input_text=lines)

    assert result.returncode == 0, result.stderr
    out_lines = result.stdout.decode("utf-8").splitlines()
    assert len(out_lines) == 2
    by_id = {r["id"]: r for r in map(json.loads, out_lines)}
    assert by_id["1"]["result"]["text"].startswith("ENC[")
    assert by_id["2"]["error"]["code"] == -32601
    assert b"malformed" in result.stderr
    assert (settings_file.parent / "logs" / "server.log").exists()


def test_serve_with_missing_binary_reports_launch_failure(tmp_path):
    request = json.dumps({"jsonrpc": "2.0", "id": 5, "method": "decrypt", "params": {"text": "x"}})
    result = run_cli("--sops", str(tmp_path / "missing-sops"), "serve", input_text=request + "\n")

    assert result.returncode == 0
    [line] = result.stdout.decode("utf-8").splitlines()
    response = json.loads(line)
    assert response["id"] == 5
    assert response["error"]["message"] == "sops decryption failed"
    assert response["error"]["data"]["reason"] == "launch"


def test_encrypt_and_decrypt_files(settings_file, tmp_path):
    plain = tmp_path / "app.sops.yaml"
    plain.write_text("token: abc\n", encoding="utf-8")

    encrypted = run_cli("--config", str(settings_file), "encrypt", str(plain))
    assert encrypted.returncode == 0, encrypted.stderr
    sealed = tmp_path / "app.enc"
    sealed.write_bytes(encrypted.stdout)

    decrypted = run_cli("--config", str(settings_file), "decrypt", str(sealed))
    assert decrypted.returncode == 0, decrypted.stderr
    assert decrypted.stdout == b"token: abc\n"


def test_decrypt_failure_goes_to_stderr(settings_file, tmp_path):
    sealed = tmp_path / "broken.enc"
    sealed.write_text("not encrypted", encoding="utf-8")
    result = run_cli("--config", str(settings_file), "decrypt", str(sealed))
    assert result.returncode == 1
    assert result.stdout == b""
    assert b"no key found" in result.stderr


def test_unmanaged_file_needs_force(settings_file, tmp_path):
    plain = tmp_path / "README.md"
    plain.write_text("hello", encoding="utf-8")
    result = run_cli("--config", str(settings_file), "encrypt", str(plain))
    assert result.returncode == EXIT_NOT_MANAGED

    forced = run_cli("--config", str(settings_file), "encrypt", "--force", str(plain))
    assert forced.returncode == 0
    assert forced.stdout.startswith(b"ENC[")


def test_stdin_transform(settings_file):
    result = run_cli("--config", str(settings_file), "encrypt", "-", input_text="from stdin")
    assert result.returncode == 0
    assert result.stdout.startswith(b"ENC[")


def test_classify_command(restore_logger, capsys, settings_file):
    assert main(["--config", str(settings_file), "classify", "secrets.sops.yaml", "config.yaml"]) == 0
    out = capsys.readouterr().out.splitlines()
    assert out == ["true\tsecrets.sops.yaml", "false\tconfig.yaml"]


def test_missing_config_is_fatal(tmp_path, capsys):
    assert main(["--config", str(tmp_path / "nope.json"), "classify", "x"]) == 1
    assert "Cannot load config" in capsys.readouterr().err


def test_parser_defaults_to_serve():
    args = build_parser().parse_args([])
    assert args.command is None


@pytest.mark.parametrize("command", ["decrypt", "encrypt"])
def test_parser_transform_commands(command):
    args = build_parser().parse_args([command, "--force", "x.txt"])
    assert args.command == command
    assert args.force is True
    assert args.file == "x.txt"


def test_serve_survives_invalid_utf8_line(settings_file):
    bad = b'{"jsonrpc":"2.0","id":"1","method":"decrypt","params":{"text":"\xff\xfe"}}\n'
    good = json.dumps({"jsonrpc": "2.0", "id": "2", "method": "encrypt", "params": {"text": "x"}}).encode("utf-8")
    result = subprocess.run(
        [sys.executable, "-m", "sops_context.server", "--config", str(settings_file)],
        input=bad + good + b"\n",
        capture_output=True,
    )

    assert result.returncode == 0, result.stderr
    [line] = result.stdout.decode("utf-8").splitlines()
    response = json.loads(line)
    assert response["id"] == "2"
    assert response["result"]["text"].startswith("ENC[")
    assert b"invalid UTF-8" in result.stderr


def test_non_utf8_file_fails_cleanly(settings_file, tmp_path):
    sealed = tmp_path / "latin1.enc"
    sealed.write_bytes(b"caf\xe9")
    result = run_cli("--config", str(settings_file), "decrypt", str(sealed))
    assert result.returncode == 1
    assert result.stdout == b""
    assert b"Traceback" not in result.stderr
    assert b"Cannot read" in result.stderr


def test_non_utf8_stdin_fails_cleanly(settings_file):
    result = subprocess.run(
        [sys.executable, "-m", "sops_context.server", "--config", str(settings_file), "encrypt", "-"],
        input=b"\xff\xfe",
        capture_output=True,
    )
    assert result.returncode == 1
    assert b"Traceback" not in result.stderr
    assert b"Cannot read" in result.stderr
