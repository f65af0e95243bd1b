"""Tests for the Gunicorn worker hook."""
import pathlib
import runpy
from types import SimpleNamespace
from unittest.mock import Mock

from iam_import.core import provisioning_service

CONF_PATH = pathlib.Path(__file__).resolve().parents[2] / "gunicorn.conf.py"


def test_defaults(monkeypatch):
    monkeypatch.delenv("GUNICORN_WORKERS", raising=False)
    monkeypatch.delenv("GUNICORN_TIMEOUT", raising=False)
    conf = runpy.run_path(str(CONF_PATH))
    assert conf["workers"] == 2
    assert conf["timeout"] == 300


def test_post_fork_drops_inherited_service_client(monkeypatch):
    monkeypatch.setattr(provisioning_service, "_CLIENT", object())
    worker = SimpleNamespace(pid=4242, log=Mock())

    runpy.run_path(str(CONF_PATH))["post_fork"](server=None, worker=worker)

    assert provisioning_service._CLIENT is None
    worker.log.info.assert_called_once()
