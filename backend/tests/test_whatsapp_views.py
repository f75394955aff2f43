import pytest

from ferraco_whatsapp.state import (
    Account,
    Authenticating,
    Connected,
    Disconnected,
    Error,
    Idle,
    Initializing,
    QrAvailable,
)
from ferraco_whatsapp.views import (
    can_reconnect,
    connection_status_category,
    is_connected,
    is_qr_available,
    legacy_status,
    snapshot,
)

ACCOUNT = Account(phone="5511999999999", name="Test", platform="web")


@pytest.mark.parametrize(
    "state,expected",
    [
        (Idle(), False),
        (Initializing(), False),
        (QrAvailable(qr_code="abc", attempt=1), False),
        (Authenticating(), False),
        (Connected(account=ACCOUNT), False),
        (Disconnected(reason=None), True),
        (Disconnected(reason="Desconectado do celular"), True),
        (Error(error="x", recoverable=True), True),
        (Error(error="x", recoverable=False), False),
    ],
)
def test_can_reconnect(state, expected):
    assert can_reconnect(state) is expected


@pytest.mark.parametrize(
    "state,expected",
    [
        (Idle(), "offline"),
        (Initializing(), "connecting"),
        (QrAvailable(qr_code="abc", attempt=1), "connecting"),
        (Authenticating(), "connecting"),
        (Connected(account=ACCOUNT), "online"),
        (Disconnected(reason="x"), "offline"),
        (Error(error="x", recoverable=False), "error"),
    ],
)
def test_connection_status_category(state, expected):
    assert connection_status_category(state) == expected


def test_category_rejects_unknown_state():
    with pytest.raises(TypeError):
        connection_status_category(object())


@pytest.mark.parametrize(
    "state,expected",
    [
        (Idle(), "DISCONNECTED"),
        (Initializing(), "INITIALIZING"),
        (QrAvailable(qr_code="abc"), "notConnected"),
        (Authenticating(), "qrReadSuccess"),
        (Connected(account=ACCOUNT), "CONNECTED"),
        (Disconnected(reason="closed on mobile"), "desconnectedMobile"),
        (Disconnected(reason="Desconectado do celular"), "desconnectedMobile"),
        (Disconnected(reason=None), "DISCONNECTED"),
        (Error(error="x"), "qrReadFail"),
    ],
)
def test_legacy_status(state, expected):
    assert legacy_status(state) == expected


def test_snapshot_of_qr_state():
    view = snapshot(QrAvailable(qr_code="data:image/png;base64,AAA", attempt=3))
    assert view["type"] == "qr-available"
    assert view["category"] == "connecting"
    assert view["qr_code"] == "data:image/png;base64,AAA"
    assert view["attempt"] == 3
    assert view["account"] is None
    assert view["can_reconnect"] is False


def test_snapshot_of_connected_state():
    view = snapshot(Connected(account=ACCOUNT))
    assert view["account"] == {
        "phone": "5511999999999",
        "name": "Test",
        "platform": "web",
        "profilePicUrl": None,
    }
    assert view["status"] == "CONNECTED"
    assert is_connected(Connected(account=ACCOUNT))
    assert not is_qr_available(Connected(account=ACCOUNT))


def test_account_from_ready_payloads():
    assert Account.from_payload({"connected": True}) == Account(phone="Conectado", name="WhatsApp", platform="web")
    assert Account.from_payload(None).name == "WhatsApp"
    account = Account.from_payload(
        {"phone": "5511888888888", "pushname": "Loja", "profilePicUrl": "https://pic"}
    )
    assert account == Account(
        phone="5511888888888", name="Loja", platform="web", profile_pic_url="https://pic"
    )
