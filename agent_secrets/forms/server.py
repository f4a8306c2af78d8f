"""
Form Server — The HTTP surface of one form session.

Routes, all bound to a single session id:
    GET  /form/{session_id}               form page
    POST /api/form/{session_id}/submit    JSON object keyed by secret name
    GET  /api/form/{session_id}/status    session status
    GET  /health                          liveness probe

Security Note:
    Submitted values are never logged and never echoed back in responses.
"""
import html
import logging
from typing import TYPE_CHECKING, Any, Optional

import orjson
from aiohttp import web

from ..errors import FormServerError, SecretsError, SessionClosedError
from .models import FieldType, FormSession

if TYPE_CHECKING:
    from .manager import FormSessionManager

logger = logging.getLogger("agent_secrets.forms")

INACTIVE_ERROR = "Form expired or completed"
PROCESSING_ERROR = "Failed to process submission"

_INPUT_TYPES = {
    FieldType.PASSWORD: "password",
    FieldType.URL: "url",
    FieldType.EMAIL: "email",
    FieldType.NUMBER: "number",
}


def _dumps(obj: Any) -> str:
    return orjson.dumps(obj).decode("utf-8")


def json_response(data: Any, status: int = 200) -> web.Response:
    return web.json_response(data, status=status, dumps=_dumps)


def render_form_page(session: FormSession) -> str:
    """Render a bare HTML page for the session's form."""
    schema = session.form_schema
    esc = html.escape
    rows = []
    for field in schema.fields:
        attrs = f'id="{esc(field.name)}" name="{esc(field.name)}"'
        if field.required:
            attrs += " required"
        if field.placeholder:
            attrs += f' placeholder="{esc(field.placeholder)}"'
        if field.type in (FieldType.TEXTAREA, FieldType.JSON, FieldType.CODE):
            control = f'<textarea {attrs} rows="{field.rows or 4}"></textarea>'
        elif field.type is FieldType.SELECT:
            options = "".join(
                f'<option value="{esc(opt.value)}">{esc(opt.label)}</option>'
                for opt in field.options
            )
            control = f"<select {attrs}>{options}</select>"
        else:
            input_type = _INPUT_TYPES.get(field.type, "text")
            control = f'<input type="{input_type}" {attrs} autocomplete="off">'
        hint = f"<small>{esc(field.description)}</small>" if field.description else ""
        rows.append(
            f'<label for="{esc(field.name)}">{esc(field.label)}</label>'
            f"{control}{hint}"
        )
    submit_url = f"/api/form/{esc(session.id)}/submit"
    return (
        "<!DOCTYPE html><html><head><meta charset=\"utf-8\">"
        f"<title>{esc(schema.title)}</title></head><body>"
        f"<h1>{esc(schema.title)}</h1>"
        f"<p>{esc(schema.description or '')}</p>"
        f'<form id="secret-form" data-submit="{submit_url}">'
        + "".join(rows)
        + f'<button type="submit">{esc(schema.submit_label)}</button></form>'
        "<p id=\"result\"></p>"
        "<script>"
        "const f=document.getElementById('secret-form');"
        "f.addEventListener('submit',async(e)=>{e.preventDefault();"
        "const body=Object.fromEntries(new FormData(f));"
        "const r=await fetch(f.dataset.submit,{method:'POST',"
        "headers:{'Content-Type':'application/json'},body:JSON.stringify(body)});"
        "const j=await r.json();"
        "document.getElementById('result').textContent="
        "j.message||j.error||Object.values(j.errors||{}).join(' ');});"
        "</script></body></html>"
    )


class FormServer:
    """aiohttp application serving one form session on a local port."""

    def __init__(
        self,
        session_id: str,
        host: str,
        port: int,
        manager: "FormSessionManager",
    ):
        self.session_id = session_id
        self.host = host
        self.port = port
        self._manager = manager
        # kept so the status route still answers once the session is retired
        self._session: Optional[FormSession] = manager.get_session(session_id)
        self._runner: Optional[web.AppRunner] = None
        self.app = web.Application()
        self._setup_routes()

    def _setup_routes(self) -> None:
        self.app.router.add_get("/form/{session_id}", self._handle_page)
        self.app.router.add_post(
            "/api/form/{session_id}/submit", self._handle_submit
        )
        self.app.router.add_get(
            "/api/form/{session_id}/status", self._handle_status
        )
        self.app.router.add_get("/health", self._handle_health)

    @property
    def running(self) -> bool:
        return self._runner is not None

    async def start(self) -> None:
        """Bind the server to its port.

        Raises:
            FormServerError: If the port cannot be bound.
        """
        runner = web.AppRunner(self.app)
        await runner.setup()
        site = web.TCPSite(runner, self.host, self.port)
        try:
            await site.start()
        except OSError as err:
            await runner.cleanup()
            raise FormServerError(
                f"Cannot start form server on {self.host}:{self.port}: {err}"
            ) from err
        self._runner = runner
        logger.info(
            "Form server for session %s listening on %s:%d",
            self.session_id, self.host, self.port,
        )

    async def stop(self) -> None:
        if self._runner is None:
            return
        runner, self._runner = self._runner, None
        await runner.cleanup()
        logger.info("Form server for session %s stopped", self.session_id)

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _session_for(self, request: web.Request) -> Optional[FormSession]:
        if request.match_info["session_id"] != self.session_id:
            raise web.HTTPNotFound()
        current = self._manager.get_session(self.session_id)
        if current is not None:
            self._session = current
        return self._session

    async def _handle_page(self, request: web.Request) -> web.Response:
        session = self._session_for(request)
        if session is None or not session.is_active:
            return web.Response(
                status=410, text=INACTIVE_ERROR, content_type="text/plain"
            )
        return web.Response(
            text=render_form_page(session), content_type="text/html"
        )

    async def _handle_submit(self, request: web.Request) -> web.Response:
        session = self._session_for(request)
        if session is None or not session.is_active:
            return json_response({"error": INACTIVE_ERROR}, status=410)
        try:
            data = orjson.loads(await request.read())
        except orjson.JSONDecodeError:
            return json_response({"error": "Invalid JSON body"}, status=400)
        if not isinstance(data, dict):
            return json_response(
                {"error": "Submission must be a JSON object"}, status=400
            )

        try:
            result = await self._manager.handle_submission(
                self.session_id,
                data,
                ip_address=request.remote,
                user_agent=request.headers.get("User-Agent"),
            )
        except SessionClosedError:
            return json_response({"error": INACTIVE_ERROR}, status=410)
        except SecretsError as err:
            logger.error(
                "Submission for session %s failed: %s", self.session_id, err
            )
            return json_response({"error": PROCESSING_ERROR}, status=500)
        except Exception:
            logger.exception(
                "Unexpected error handling submission for session %s",
                self.session_id,
            )
            return json_response({"error": PROCESSING_ERROR}, status=500)

        if result.errors:
            return json_response({"errors": result.errors}, status=400)
        if not result.accepted:
            return json_response({"error": INACTIVE_ERROR}, status=410)
        return json_response({"success": True, "message": result.message})

    async def _handle_status(self, request: web.Request) -> web.Response:
        session = self._session_for(request)
        if session is None:
            return json_response({"error": "Session not found"}, status=404)
        return json_response({
            "status": session.status.value,
            "submissionsCount": len(session.submissions),
            "maxSubmissions": session.form_schema.max_submissions,
            "expiresAt": session.expires_at,
        })

    async def _handle_health(self, request: web.Request) -> web.Response:
        return json_response({"status": "ok", "session": self.session_id})
