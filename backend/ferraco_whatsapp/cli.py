"""Command line view of the WhatsApp connection.

    ferraco-whatsapp status   one-shot bridge status from the REST API
    ferraco-whatsapp watch    follow the event channel and print state changes
"""
import asyncio
import logging
import sys

from ferraco_whatsapp.bridge_client import get_bridge_status
from ferraco_whatsapp.config import Settings, get_settings
from ferraco_whatsapp.session import SessionCallbacks, WhatsAppSession
from ferraco_whatsapp.state import ConnectionState
from ferraco_whatsapp.views import CONNECTING, ERROR, OFFLINE, ONLINE, is_error, snapshot

# Colors and formatting
RESET = "\033[0m"
BOLD = "\033[1m"
GREEN = "\033[38;5;46m"
RED = "\033[38;5;196m"
CYAN = "\033[38;5;51m"
GRAY = "\033[38;5;240m"
WHITE = "\033[38;5;255m"
YELLOW = "\033[38;5;226m"

CATEGORY_COLORS = {
    ONLINE: GREEN,
    OFFLINE: GRAY,
    CONNECTING: YELLOW,
    ERROR: RED,
}


def configure_logging(level: str = "INFO") -> None:
    log = logging.getLogger("ferraco_whatsapp")
    log.setLevel(level)
    if not log.handlers:
        handler = logging.StreamHandler(sys.stderr)
        handler.setFormatter(logging.Formatter("%(levelname)s:     %(name)s: %(message)s"))
        log.addHandler(handler)


def divider() -> str:
    return f"  {GRAY}─────────────────────────────────────────{RESET}"


def format_state(state: ConnectionState) -> str:
    view = snapshot(state)
    color = CATEGORY_COLORS.get(view["category"], WHITE)
    line = f"    {color}{view['category']}{RESET} {CYAN}{view['type']}{RESET}"
    if view["attempt"]:
        line += f" {GRAY}(QR #{view['attempt']}){RESET}"
    if view["account"]:
        line += f" {view['account']['name']} {GRAY}{view['account']['phone']}{RESET}"
    if view["reason"]:
        line += f" {GRAY}{view['reason']}{RESET}"
    if view["error"]:
        hint = "retry available" if view["can_reconnect"] else "reset required"
        line += f" {RED}{view['error']}{RESET} {GRAY}[{hint}]{RESET}"
    return line


async def show_status(settings: Settings) -> int:
    status = await get_bridge_status(
        settings.backend_url,
        token=settings.ferraco_api_token,
        timeout_s=settings.ferraco_http_timeout_s,
    )
    print(divider())
    print(f"  {WHITE}{BOLD}whatsapp{RESET}")
    if not status["reachable"]:
        print(f"    {RED}{status['error']}{RESET}")
        print(divider())
        return 1
    color = GREEN if status["connected"] else YELLOW
    print(f"    {CYAN}state{RESET} {color}{status['state']}{RESET}")
    if status["message"]:
        print(f"    {CYAN}message{RESET} {status['message']}")
    print(divider())
    return 0


async def watch(settings: Settings) -> int:
    def _on_change(_old: ConnectionState, new: ConnectionState) -> None:
        print(format_state(new), flush=True)

    print(divider())
    print(f"  {WHITE}{BOLD}whatsapp{RESET} {GRAY}{settings.ws_url}{RESET}")
    session = WhatsAppSession(settings, callbacks=SessionCallbacks(on_state_change=_on_change))
    async with session:
        while session.transport.running:
            await asyncio.sleep(0.5)
        failed = is_error(session.state)
    print(divider())
    return 1 if failed else 0


def main() -> None:
    settings = get_settings()
    configure_logging(settings.log_level)
    command = sys.argv[1] if len(sys.argv) > 1 else "status"
    if command == "status":
        sys.exit(asyncio.run(show_status(settings)))
    if command == "watch":
        try:
            sys.exit(asyncio.run(watch(settings)))
        except KeyboardInterrupt:
            sys.exit(0)
    print(f"{RED}Unknown command: {command}{RESET} (use status or watch)")
    sys.exit(2)


if __name__ == "__main__":
    main()
