import io
import json
import sys

import pytest

import scripts.bulk_import as cli
from iam_import.core import provisioning_service
from iam_import.core.provisioning_service import ProvisioningError
from scripts import audit


@pytest.fixture(autouse=True)
def restore_sys_argv():
    """Make sure every test sees a clean CLI invocation."""
    original = sys.argv[:]
    yield
    sys.argv = original


@pytest.fixture
def created(monkeypatch):
    calls = []

    def fake_create_account(identity_key, display_name, role_tag, entitlement_tag=None, correlation_id=None):
        calls.append((identity_key, role_tag, entitlement_tag))
        if identity_key.startswith("dup"):
            raise ProvisioningError(409, f"User with email '{identity_key}' already exists", "uniqueness")
        return "kc-id"

    monkeypatch.setattr(provisioning_service, "create_account", fake_create_account)
    return calls


@pytest.fixture
def users_csv(tmp_path):
    path = tmp_path / "users.csv"
    path.write_text("email,username,role,licenseType\nann@example.com,Ann,admin,basic\nnot-an-email,X\n")
    return path


def test_preview_prints_table_without_provisioning(users_csv, created, capsys):
    sys.argv = ["bulk_import.py", "preview", str(users_csv)]

    cli.main()

    out = capsys.readouterr().out
    assert "Parsed 1 users" in out
    assert "ann@example.com" in out
    assert "not-an-email" not in out
    assert created == []
    assert audit.read_events() == []


def test_commit_success(users_csv, created, capsys):
    sys.argv = ["bulk_import.py", "--operator", "ops", "commit", str(users_csv)]

    cli.main()

    out = capsys.readouterr().out
    assert created == [("ann@example.com", "admin", "basic")]
    assert "#1 ann@example.com: ok (created)" in out
    assert "Successfully imported 1 users. Failed: 0." in out
    events = audit.read_events()
    assert len(events) == 1
    assert events[0]["operator"] == "ops"


def test_commit_with_failures_exits_non_zero(tmp_path, created, capsys):
    path = tmp_path / "users.txt"
    path.write_text("a@example.com;A\ndup@example.com;Dup\n")
    sys.argv = ["bulk_import.py", "commit", str(path), "--delimiter", ";", "--default-entitlement", "premium"]

    with pytest.raises(SystemExit) as exc_info:
        cli.main()

    assert exc_info.value.code == 1
    out = capsys.readouterr().out
    assert "dup@example.com: FAILED (User with email 'dup@example.com' already exists)" in out
    assert "Failed: 1." in out
    assert created == [("a@example.com", "user", "premium"), ("dup@example.com", "user", "premium")]


def test_structured_input_from_stdin(monkeypatch, created, capsys):
    payload = json.dumps([{"email": "s@example.com", "role": "staff"}])
    monkeypatch.setattr(sys, "stdin", io.StringIO(payload))
    sys.argv = ["bulk_import.py", "commit", "--format", "json", "--workers", "2"]

    cli.main()

    assert created == [("s@example.com", "staff", None)]


def test_format_guessed_from_suffix(tmp_path, created, capsys):
    path = tmp_path / "users.json"
    path.write_text(json.dumps([{"email": "j@example.com"}]))
    sys.argv = ["bulk_import.py", "preview", str(path)]

    cli.main()

    assert "j@example.com" in capsys.readouterr().out


def test_invalid_json_exits_before_provisioning(tmp_path, created, capsys):
    path = tmp_path / "users.json"
    path.write_text("[{oops")
    sys.argv = ["bulk_import.py", "commit", str(path)]

    with pytest.raises(SystemExit) as exc_info:
        cli.main()

    assert exc_info.value.code == 1
    assert "Invalid JSON format" in capsys.readouterr().err
    assert created == []
    assert audit.read_events() == []


def test_nothing_to_import(tmp_path, created, capsys):
    path = tmp_path / "users.csv"
    path.write_text("email\nbroken\n")
    sys.argv = ["bulk_import.py", "commit", str(path)]

    with pytest.raises(SystemExit) as exc_info:
        cli.main()

    assert exc_info.value.code == 1
    assert "No valid users to import" in capsys.readouterr().err


def test_missing_file(tmp_path, capsys):
    sys.argv = ["bulk_import.py", "preview", str(tmp_path / "absent.csv")]
    with pytest.raises(SystemExit):
        cli.main()
    assert "[bulk-import] Error" in capsys.readouterr().err


def test_connection_flags_reach_settings(monkeypatch, users_csv, created):
    monkeypatch.setenv("KEYCLOAK_URL", "http://127.0.0.1:8080")
    monkeypatch.setenv("KEYCLOAK_REALM", "demo")
    sys.argv = ["bulk_import.py", "--kc-url", "http://kc.internal:8080", "--realm", "staff", "preview", str(users_csv)]

    cli.main()

    settings = cli.get_settings()
    assert settings.keycloak_url == "http://kc.internal:8080"
    assert settings.keycloak_realm == "staff"


def test_no_subcommand_prints_help(capsys):
    sys.argv = ["bulk_import.py"]
    with pytest.raises(SystemExit) as exc_info:
        cli.main()
    assert exc_info.value.code == 2
    assert "preview" in capsys.readouterr().out
