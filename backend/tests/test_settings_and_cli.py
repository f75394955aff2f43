import asyncio

from ferraco_whatsapp import cli
from ferraco_whatsapp.config import Settings, get_settings
from ferraco_whatsapp.state import Account, Connected, Error, Idle, Initializing, QrAvailable


def test_settings_defaults_from_env(monkeypatch):
    monkeypatch.setenv("FERRACO_BACKEND_URL", "https://crm.example.com/")
    monkeypatch.setenv("FERRACO_RECONNECT_ATTEMPTS", "4")
    monkeypatch.setenv("FERRACO_API_TOKEN", "secret")
    get_settings.cache_clear()
    try:
        settings = get_settings()
        assert settings.backend_url == "https://crm.example.com"
        assert settings.ws_url == "wss://crm.example.com/ws"
        assert settings.ferraco_reconnect_attempts == 4
        assert settings.ferraco_reconnect_delay_s == 1.0
        assert settings.auth_headers == {"Authorization": "Bearer secret"}
    finally:
        get_settings.cache_clear()


def test_ws_url_variants():
    assert Settings(ferraco_backend_url="http://localhost:3000", ferraco_ws_path="socket").ws_url == (
        "ws://localhost:3000/socket"
    )
    assert Settings(ferraco_backend_url="").ws_url == ""
    assert Settings(ferraco_api_token=" ").auth_headers == {}
    assert Settings(ferraco_log_level="loud").log_level == "INFO"


def test_format_state_lines():
    qr_line = cli.format_state(QrAvailable(qr_code="abc", attempt=2))
    assert "connecting" in qr_line
    assert "QR #2" in qr_line

    connected_line = cli.format_state(Connected(account=Account(phone="5511999999999", name="Loja")))
    assert "online" in connected_line
    assert "Loja" in connected_line

    assert "reset required" in cli.format_state(Error(error="fatal", recoverable=False))
    assert "retry available" in cli.format_state(Error(error="flaky", recoverable=True))


def test_show_status_exit_codes(monkeypatch, capsys):
    async def _unreachable(*_args, **_kwargs):
        return {"reachable": False, "error": "Cannot reach backend at http://x"}

    async def _connected(*_args, **_kwargs):
        return {"reachable": True, "connected": True, "state": "connected", "message": "WhatsApp conectado"}

    monkeypatch.setattr(cli, "get_bridge_status", _unreachable)
    assert asyncio.run(cli.show_status(Settings())) == 1
    assert "Cannot reach backend" in capsys.readouterr().out

    monkeypatch.setattr(cli, "get_bridge_status", _connected)
    assert asyncio.run(cli.show_status(Settings())) == 0
    assert "WhatsApp conectado" in capsys.readouterr().out


class _FinishedTransport:
    running = False


class _FinishedSession:
    final_state = Idle()

    def __init__(self, *_args, **_kwargs):
        self.transport = _FinishedTransport()
        self.state = Initializing()

    async def __aenter__(self):
        self.state = self.final_state
        return self

    async def __aexit__(self, exc_type, exc, tb):
        return None


def test_watch_exit_codes(monkeypatch, capsys):
    monkeypatch.setattr(cli, "WhatsAppSession", _FinishedSession)

    monkeypatch.setattr(_FinishedSession, "final_state", Idle())
    assert asyncio.run(cli.watch(Settings())) == 0

    account = Account(phone="5511999999999", name="Loja")
    monkeypatch.setattr(_FinishedSession, "final_state", Connected(account=account))
    assert asyncio.run(cli.watch(Settings())) == 0

    monkeypatch.setattr(_FinishedSession, "final_state", Error(error="Conexão com o servidor perdida"))
    assert asyncio.run(cli.watch(Settings())) == 1
    capsys.readouterr()
