"""
Form Session Manager — Ephemeral, tunnel-backed forms that collect secrets.

Lifecycle of a session::

    create_secret_form()          port leased, tunnel opened, server started
        |
        v
      active --(max submissions reached)--> completed --+
        |                                               |--> closed
        +------(deadline passed / closed)--> expired ---+

``completed`` and ``expired`` are terminal. Closing a session removes it from
the registry, closes its tunnel, stops its server and returns its port to the
pool. Deadlines are checked against the injected clock, lazily on access and
on every sweep tick, so tests drive expiry by advancing a ``ManualClock``.

Security Note:
    Submitted values go straight to the SecretStore. They are never logged.
"""
import asyncio
import contextlib
import logging
import uuid
from typing import Any, Callable, Optional

from ..clock import Clock, SystemClock
from ..errors import SessionClosedError, SubmissionError
from ..tunnel import TunnelProvider
from ..vault.config import SecretsConfig
from ..vault.models import SecretContext
from ..vault.store import SecretStore
from .models import (
    FormEvent,
    FormSession,
    FormSubmission,
    SecretFormRequest,
    SessionStatus,
    SubmissionResult,
)
from .ports import PortPool
from .schema import build_form_schema, validate_submission
from .server import FormServer

logger = logging.getLogger("agent_secrets.forms")

ServerFactory = Callable[[str, str, int, "FormSessionManager"], Any]


class FormSessionManager:
    """Registry and state machine of active secret forms."""

    def __init__(
        self,
        store: SecretStore,
        tunnels: TunnelProvider,
        config: Optional[SecretsConfig] = None,
        clock: Optional[Clock] = None,
        server_factory: ServerFactory = FormServer,
        port_pool: Optional[PortPool] = None,
    ):
        self._store = store
        self._tunnels = tunnels
        self._config = config or SecretsConfig(agent_id=store.agent_id)
        self._clock = clock or SystemClock()
        self._server_factory = server_factory
        self._ports = port_pool or PortPool(
            self._config.port_range_start,
            self._config.port_range_size,
            host=self._config.form_host,
        )
        self._sessions: dict[str, FormSession] = {}
        self._servers: dict[str, Any] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._closing: set[asyncio.Task] = set()
        self._sweeper: Optional[asyncio.Task] = None

    @property
    def ports(self) -> PortPool:
        return self._ports

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def _emit(
        self,
        session: FormSession,
        event_type: str,
        submission: Optional[FormSubmission] = None,
    ) -> None:
        if session.events is None:
            return
        event = FormEvent(
            type=event_type, session_id=session.id, submission=submission
        )
        try:
            session.events.put_nowait(event)
        except asyncio.QueueFull:
            logger.warning(
                "Event queue full, dropped %s event for session %s",
                event_type, session.id,
            )

    def _expire(self, session: FormSession) -> None:
        if session.is_active:
            session.status = SessionStatus.EXPIRED
            logger.info("Form session %s expired", session.id)
            self._emit(session, "expired")

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    async def create_secret_form(
        self,
        request: SecretFormRequest,
        context: SecretContext,
        events: Optional[asyncio.Queue] = None,
    ) -> tuple[str, str]:
        """Open a form collecting the requested secrets.

        Args:
            request: Secrets to collect and form options.
            context: Scope the submitted secrets are stored under.
            events: Queue receiving a FormEvent per submission and state change.

        Returns:
            ``(url, session_id)``: public URL of the form page and session id.

        Raises:
            PortExhaustedError: If no local port is free.
            TunnelError: If the tunnel cannot be opened.
            FormServerError: If the form server cannot be started.
        """
        now = self._clock.now()
        schema = build_form_schema(request, now, self._config.default_form_ttl)
        lifetime = schema.expires_at - now

        port = self._ports.acquire()
        try:
            tunnel = await self._tunnels.create_tunnel(
                port, f"secret-form-{schema.id}", lifetime
            )
        except Exception:
            self._ports.release(port)
            raise

        session_id = uuid.uuid4().hex
        session = FormSession(
            id=session_id,
            form_id=schema.id,
            tunnel_id=tunnel.id,
            port=port,
            url=f"{tunnel.url}/form/{session_id}",
            form_schema=schema,
            request=request,
            context=context,
            created_at=now,
            expires_at=schema.expires_at,
            events=events,
        )
        self._sessions[session_id] = session
        server = self._server_factory(
            session_id, self._config.form_host, port, self
        )
        try:
            await server.start()
        except Exception:
            self._sessions.pop(session_id, None)
            await self._tunnels.close_tunnel(tunnel.id)
            self._ports.release(port)
            raise
        self._servers[session_id] = server

        logger.info(
            "Created secret form session %s (%d field(s), port %d)",
            session_id, len(schema.fields), port,
        )
        return session.url, session_id

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def get_session(self, session_id: str) -> Optional[FormSession]:
        """Return a registered session, expiring it first if overdue."""
        session = self._sessions.get(session_id)
        if session is not None and self._clock.now() >= session.expires_at:
            self._expire(session)
        return session

    def list_sessions(self) -> list[FormSession]:
        return [self.get_session(sid) for sid in list(self._sessions)]

    # ------------------------------------------------------------------
    # Submission
    # ------------------------------------------------------------------

    def _inactive(self, session: Optional[FormSession]) -> SubmissionResult:
        if session is None:
            return SubmissionResult(
                accepted=False, message="Form session not found"
            )
        return SubmissionResult(
            accepted=False,
            status=session.status,
            message="Form expired or completed",
        )

    async def handle_submission(
        self,
        session_id: str,
        data: dict[str, Any],
        ip_address: Optional[str] = None,
        user_agent: Optional[str] = None,
    ) -> SubmissionResult:
        """Validate a submission and store its secrets.

        Secrets are stored one by one in the order they were requested. When
        storing one fails, the rest are not attempted and the ones already
        stored stay stored.

        Args:
            session_id: Target session.
            data: Submitted values keyed by secret name.
            ip_address: Client address, kept with the submission.
            user_agent: Client user agent, kept with the submission.

        Returns:
            The outcome; ``errors`` holds field errors when validation fails.

        Raises:
            SubmissionError: If the store refuses one of the secrets.
            SessionClosedError: If the session was closed while storing.
        """
        session = self.get_session(session_id)
        if session is None or not session.is_active:
            return self._inactive(session)

        held = session
        lock = self._locks.setdefault(session_id, asyncio.Lock())
        async with lock:
            # a concurrent submission may have completed the session
            session = self.get_session(session_id)
            if session is None or not session.is_active:
                return self._inactive(session or held)

            errors = validate_submission(session.form_schema, data)
            if errors:
                logger.info(
                    "Rejected submission for session %s: %d field error(s)",
                    session_id, len(errors),
                )
                return SubmissionResult(
                    accepted=False, status=session.status, errors=errors
                )

            stored: list[str] = []
            for descriptor in session.request.secrets:
                value = data.get(descriptor.key)
                if not value:
                    continue
                ok = await self._store.set(
                    descriptor.key, value, session.context, descriptor.config
                )
                if ok:
                    stored.append(descriptor.key)
                if self._sessions.get(session_id) is not session:
                    self._expire(session)
                    raise SessionClosedError(
                        f"Form session {session_id} closed during submission",
                        stored=stored,
                    )
                if not ok:
                    raise SubmissionError(
                        f"Secret {descriptor.key} could not be stored",
                        stored=stored,
                    )

            submission = FormSubmission(
                form_id=session.form_id,
                session_id=session_id,
                data=data,
                submitted_at=self._clock.now(),
                ip_address=ip_address,
                user_agent=user_agent,
            )
            session.submissions.append(submission)
            self._emit(session, "submitted", submission)
            logger.info(
                "Accepted submission %d/%d for session %s (%d secret(s))",
                len(session.submissions),
                session.form_schema.max_submissions,
                session_id, len(stored),
            )

            if len(session.submissions) >= session.form_schema.max_submissions:
                session.status = SessionStatus.COMPLETED
                self._emit(session, "completed", submission)
                self._sessions.pop(session_id, None)
                # the request being answered runs on this session's server
                task = asyncio.create_task(self._release(session))
                self._closing.add(task)
                task.add_done_callback(self._closing.discard)

            return SubmissionResult(
                accepted=True,
                status=session.status,
                message=session.form_schema.success_message,
            )

    # ------------------------------------------------------------------
    # Teardown
    # ------------------------------------------------------------------

    async def _release(self, session: FormSession) -> None:
        self._locks.pop(session.id, None)
        await self._tunnels.close_tunnel(session.tunnel_id)
        server = self._servers.pop(session.id, None)
        if server is not None:
            await server.stop()
        self._ports.release(session.port)
        self._emit(session, "closed")
        logger.info("Closed form session %s", session.id)

    async def close_session(self, session_id: str) -> None:
        """Close a session and free its resources; unknown ids are ignored."""
        session = self._sessions.pop(session_id, None)
        if session is None:
            return
        self._expire(session)
        await self._release(session)

    async def drain(self) -> None:
        """Wait for sessions being closed in the background."""
        if self._closing:
            await asyncio.gather(*list(self._closing))

    async def cleanup_expired_sessions(self) -> int:
        """Close every session that is overdue or no longer active.

        Also closes tunnels past their own deadline.

        Returns:
            Number of sessions closed.
        """
        now = self._clock.now()
        overdue = [
            session_id
            for session_id, session in self._sessions.items()
            if not session.is_active or now >= session.expires_at
        ]
        for session_id in overdue:
            await self.close_session(session_id)
        if overdue:
            logger.info("Cleaned up %d expired form session(s)", len(overdue))
        await self._tunnels.cleanup_expired_tunnels()
        return len(overdue)

    async def _sweep(self) -> None:
        interval = self._config.sweep_interval
        while True:
            await asyncio.sleep(interval)
            try:
                await self.cleanup_expired_sessions()
            except Exception:
                logger.exception("Form session sweep failed")

    def start(self) -> None:
        """Start the periodic expiry sweep."""
        if self._sweeper is None:
            self._sweeper = asyncio.create_task(self._sweep())
            logger.info(
                "Form session sweep started (every %ss)",
                self._config.sweep_interval,
            )

    async def stop(self) -> None:
        """Stop the sweep and close every session."""
        if self._sweeper is not None:
            self._sweeper.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._sweeper
            self._sweeper = None
        for session_id in list(self._sessions):
            await self.close_session(session_id)
        await self.drain()
        logger.info("Form session manager stopped")
