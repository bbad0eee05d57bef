"""
Interactive requester.

Commands:
    /new        start a new chat session
    /operator   switch this node to operator mode
    /inference  switch back to inference mode
    /status     show relay node status
    /bye        exit
"""

import asyncio

from blindrelay.common.config import Settings, load_settings
from blindrelay.common.errors import BlindRelayError, CryptoError, NotFoundError
from blindrelay.common.logs import configure_logging
from blindrelay.monitor import NodeMonitor
from blindrelay.net.inference import InferenceClient
from blindrelay.net.relay import RelayClient
from blindrelay.requester import ChatSessionDriver
from blindrelay.runtime import Mode, ModeController
from blindrelay.storage.kv import JsonFileStore
from blindrelay.storage.sessions import SessionStore


def print_reply(text: str) -> None:
    print(f"\n[assistant] {text}\n> ", end="", flush=True)


def print_status(monitor: NodeMonitor) -> None:
    state = "active" if monitor.active else "inactive"
    print(f"[NODE] {state}, version {monitor.version}")
    for count in monitor.protocols:
        print(f"[NODE]   {count.name}: {count.value}")


# ------------------------ Chat Loop ------------------------

async def chat_loop(controller: ModeController) -> None:
    driver = controller.driver
    print("📨 Chat ready! Type your message. Type /bye to exit.\n")

    while True:
        text = await asyncio.to_thread(input, "> ")
        command = text.strip()

        if command == "/bye":
            break
        if command == "/new":
            driver.reset()
            print("[CHAT] New session.")
            continue
        if command == "/status":
            print_status(controller.monitor)
            continue
        if command in ("/operator", "/inference"):
            mode = Mode.OPERATOR if command == "/operator" else Mode.INFERENCE
            try:
                await controller.activate(mode)
            except BlindRelayError as e:
                print(f"[MODE] Could not switch to {mode.value}: {e}")
                continue
            print(f"[MODE] {mode.value}")
            continue

        if controller.mode is not Mode.INFERENCE:
            print("[MODE] Operator mode is serving requests; /inference to chat.")
            continue

        try:
            session = await driver.send(text)
        except CryptoError as e:
            print(f"[CRYPTO] Message not sent: {e}")
            continue
        except NotFoundError as e:
            # deleted from the store while open
            print(f"[STORE] {e}; starting a new session.")
            driver.reset()
            continue
        except BlindRelayError as e:
            print(f"[ERROR] Message not sent: {e}")
            continue
        if session is not None and len(session.messages) == 1:
            print(f"[CHAT] Session '{session.title}' created.")


# ------------------------ Main client flow ------------------------

async def run_client(settings: Settings) -> None:
    relay = RelayClient(settings.relay_url, timeout=settings.http_timeout)
    inference = InferenceClient(
        settings.inference_url,
        model=settings.model,
        timeout=settings.inference_timeout,
    )
    monitor = NodeMonitor(relay, interval=settings.status_interval)
    sessions = SessionStore(JsonFileStore(settings.store_path))
    driver = ChatSessionDriver(sessions, reply_delay=settings.reply_delay, on_reply=print_reply)
    controller = ModeController(settings, relay, inference, monitor, driver)

    print(f"[CONFIG] Relay node: {settings.relay_url}")
    print(f"[CONFIG] Encryption: {settings.scheme}")

    await monitor.refresh()
    print_status(monitor)
    monitor.start()

    await controller.activate(Mode.INFERENCE)
    try:
        await chat_loop(controller)
    except (EOFError, KeyboardInterrupt):
        pass
    finally:
        await controller.deactivate()
        monitor.stop()
        await monitor.wait()
        await relay.close()
        await inference.close()
        print("✔ Session closed.")


def main():
    settings = load_settings()
    configure_logging(settings.log_level, settings.log_format)
    asyncio.run(run_client(settings))


if __name__ == "__main__":
    main()
