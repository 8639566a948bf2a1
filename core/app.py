import asyncio
import signal
import sys

from dotenv import load_dotenv

from core.orchestrator import SessionOrchestrator
from runtime.version import as_string as version_string
from services.status_api import StatusApiServer
from services.youtube.transport import YouTubeTransport
from shared.config.bot import ConfigError, load_bot_config
from shared.logging.logger import get_logger

log = get_logger("core.app")


async def main(stop_event: asyncio.Event) -> int:
    # --------------------------------------------------
    # ENV + CONFIG
    # --------------------------------------------------
    load_dotenv()
    log.info("Environment variables loaded")
    log.info(f"{version_string()} booting")

    config = load_bot_config()
    try:
        config.validate()
    except ConfigError as e:
        log.error(str(e))
        return 1

    # --------------------------------------------------
    # CORE SYSTEMS
    # --------------------------------------------------
    transport = YouTubeTransport(
        api_key=config.api_key,
        oauth_token=config.oauth_token,
        refresh_token=config.refresh_token,
        client_id=config.client_id,
        client_secret=config.client_secret,
    )
    orchestrator = SessionOrchestrator(config=config, transport=transport)

    endpoint = StatusApiServer(
        config.server,
        orchestrator,
        asyncio.get_running_loop(),
    )
    orchestrator.endpoint = endpoint

    try:
        endpoint.start()
    except OSError as e:
        log.warning(f"Status API unavailable ({e}); continuing without it")
        orchestrator.endpoint = None

    # --------------------------------------------------
    # RUN UNTIL SIGNAL OR SESSION STOP
    # --------------------------------------------------
    await orchestrator.start()

    signal_wait = asyncio.create_task(stop_event.wait())
    session_wait = asyncio.create_task(orchestrator.wait_stopped())
    await asyncio.wait({signal_wait, session_wait}, return_when=asyncio.FIRST_COMPLETED)

    if stop_event.is_set() and not orchestrator.stopped:
        log.info("Shutdown initiated")
        await orchestrator.stop("signal")

    for task in (signal_wait, session_wait):
        task.cancel()

    # --------------------------------------------------
    # ORDERLY SHUTDOWN
    # --------------------------------------------------
    try:
        await orchestrator.timers.drain()
    except Exception as e:
        log.warning(f"Timer drain error ignored: {e}")

    try:
        await transport.close()
    except Exception as e:
        log.warning(f"Transport close error ignored: {e}")

    log.info(f"GameBuddy stopped ({orchestrator.state.stop_reason})")
    return 1 if orchestrator.fatal_error else 0


# ----------------------------------------------------------------------
# SIGNAL HANDLING (WINDOWS-SAFE)
# ----------------------------------------------------------------------

def _install_signal_handlers(
    loop: asyncio.AbstractEventLoop,
    stop_event: asyncio.Event,
):
    def _handler(signum, frame):
        try:
            loop.call_soon_threadsafe(stop_event.set)
        except RuntimeError:
            stop_event.set()

    try:
        signal.signal(signal.SIGINT, _handler)
        signal.signal(signal.SIGTERM, _handler)
    except (ValueError, OSError) as e:
        log.warning(f"Signal handlers not installed: {e}")


# ----------------------------------------------------------------------
# ENTRYPOINT
# ----------------------------------------------------------------------

def run() -> int:
    loop = asyncio.new_event_loop()
    asyncio.set_event_loop(loop)

    stop_event = asyncio.Event()
    _install_signal_handlers(loop, stop_event)

    exit_code = 0
    try:
        exit_code = loop.run_until_complete(main(stop_event))

    except KeyboardInterrupt:
        log.info("KeyboardInterrupt received, shutdown initiated")

    finally:
        # --------------------------------------------------
        # CANCEL REMAINING TASKS (CLEANLY)
        # --------------------------------------------------
        pending = [t for t in asyncio.all_tasks(loop) if not t.done()]
        for task in pending:
            task.cancel()

        if pending:
            loop.run_until_complete(
                asyncio.gather(*pending, return_exceptions=True)
            )

        loop.run_until_complete(loop.shutdown_asyncgens())
        asyncio.set_event_loop(None)
        loop.close()

    return exit_code


if __name__ == "__main__":
    sys.exit(run())
