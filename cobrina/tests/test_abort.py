# cobrina/tests/test_abort.py
import asyncio
import logging

import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from starlette.requests import Request

from cobrina.abort import ensure_connected
from cobrina.errors import ClientAborted, install_error_handlers
from cobrina.main import app

client = TestClient(app)


class _StubRequest:
    def __init__(self, gone: bool):
        self.gone = gone

    async def is_disconnected(self) -> bool:
        return self.gone


def test_ensure_connected_raises_when_client_is_gone():
    with pytest.raises(ClientAborted):
        asyncio.run(ensure_connected(_StubRequest(True)))


def test_ensure_connected_passes_while_client_is_there():
    assert asyncio.run(ensure_connected(_StubRequest(False))) is None


def test_handler_answers_499_and_logs_at_info(caplog):
    mini = FastAPI()
    install_error_handlers(mini)

    @mini.get("/lento")
    def lento():
        raise ClientAborted()

    with caplog.at_level(logging.INFO, logger="cobrina"):
        r = TestClient(mini).get("/lento")

    assert r.status_code == 499
    assert r.content == b""
    aborted = [rec for rec in caplog.records if "Client aborted" in rec.getMessage()]
    assert len(aborted) == 1
    assert aborted[0].levelno == logging.INFO
    assert "/lento" in aborted[0].getMessage()


def test_listing_stops_when_client_disconnects(operador, monkeypatch):
    async def gone(self):
        return True

    monkeypatch.setattr(Request, "is_disconnected", gone)
    r = client.get("/proyecciones/filtrar", headers=operador["headers"])
    assert r.status_code == 499
