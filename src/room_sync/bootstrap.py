from __future__ import annotations

from dataclasses import dataclass

from room_sync.app_config import AppConfig, RuntimeEnv
from room_sync.auth import AnonymousAuthenticator, AuthSession, StaticIdentity
from room_sync.backend import ChatBackend, IdentityProvider, TokenProvider, create_backend
from room_sync.chat_session import ChatSession
from room_sync.logging_config import setup_logging
from room_sync.notifier import ConsoleNotifier


@dataclass
class AppRuntime:
    session: ChatSession
    backend: ChatBackend
    auth: AuthSession
    notifier: ConsoleNotifier
    log_descriptions: list[str]


async def bootstrap_runtime(app: AppConfig, env: RuntimeEnv) -> AppRuntime:
    """Wire logging, identity, backend and session. Raises AuthError or ValueError."""
    log_descriptions = setup_logging(level=app.log_level, consumers=app.log_consumers)

    identity: IdentityProvider
    token_provider: TokenProvider | None = None
    if app.backend_name == "firebase":
        if not env.firebase_api_key:
            raise ValueError("FIREBASE_API_KEY environment variable is required for the firebase backend")
        authenticator = AnonymousAuthenticator(env.firebase_api_key, timeout_seconds=app.request_timeout_seconds)
        auth = await authenticator.sign_in()
        identity = authenticator
        token_provider = authenticator.fresh_id_token
    else:
        static = StaticIdentity()
        auth = await static.sign_in()
        identity = static

    backend = create_backend(
        app.backend_name,
        database_url=env.firebase_database_url or "",
        id_token=auth.id_token,
        timeout_seconds=app.request_timeout_seconds,
        reconnect_attempts=app.reconnect_attempts,
        token_provider=token_provider,
    )
    session = ChatSession(backend, identity.current_identity(), display_name=app.display_name)
    notifier = ConsoleNotifier(enabled=app.notifications_enabled)

    return AppRuntime(
        session=session,
        backend=backend,
        auth=auth,
        notifier=notifier,
        log_descriptions=log_descriptions,
    )
