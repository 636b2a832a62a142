import asyncio
import sys

from dotenv import load_dotenv
from loguru import logger

from room_sync.app_config import load_json_config, parse_app_config, resolve_runtime_env
from room_sync.bootstrap import bootstrap_runtime
from room_sync.console import ChatConsole
from room_sync.errors import AuthError


async def main() -> None:
    load_dotenv()

    app = parse_app_config(load_json_config())
    env = resolve_runtime_env()

    try:
        runtime = await bootstrap_runtime(app, env)
    except (AuthError, ValueError) as ex:
        logger.error(f"Startup failed: {ex}")
        print(f"Startup failed: {ex}", file=sys.stderr)
        sys.exit(1)

    session = runtime.session
    console = ChatConsole(session, notifier=runtime.notifier)

    print("room-sync (type 'exit' to quit, '/help' for commands)")
    print(f"Signed in as {session.display_name} ({session.local_user_id})")
    print(f"Backend: {app.backend_name}")
    if runtime.log_descriptions:
        print(f"Logging: {', '.join(runtime.log_descriptions)}")
    print()

    if app.default_room:
        session.switch_room(app.default_room)
    else:
        print("Pick a room by typing its name.")

    try:
        while True:
            try:
                line = await asyncio.to_thread(input, console.prompt)
            except (EOFError, KeyboardInterrupt):
                break

            trimmed = line.strip()
            if trimmed in ("exit", "quit"):
                break
            if not trimmed:
                continue

            try:
                await console.handle_line(line)
            except Exception as ex:
                logger.error(f"Unhandled error: {ex}")
    finally:
        console.detach()
        await session.close()
        await runtime.backend.close()


def run() -> None:
    asyncio.run(main())


if __name__ == "__main__":
    run()
