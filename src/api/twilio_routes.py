"""Twilio Voice integration.

The voice webhook answers a call with TwiML that connects it to the media
stream server, passing the CallSid along as a custom stream parameter so the
stream's ``start`` event can be correlated with the call.
"""

from __future__ import annotations

import logging
from xml.sax.saxutils import escape

from fastapi import APIRouter, HTTPException, Request, Response

from config.settings import get_settings, to_ws_url

LOGGER = logging.getLogger(__name__)

router = APIRouter(prefix="/twilio", tags=["twilio"])


def _twiml_response(xml: str) -> Response:
    # Twilio expects application/xml
    return Response(content=xml, media_type="application/xml")


def _attr(value: str) -> str:
    return escape(value, {"\"": "&quot;"})


def _twiml_connect_stream(*, stream_url: str, parameters: dict[str, str]) -> str:
    params = "".join(
        f"<Parameter name=\"{_attr(name)}\" value=\"{_attr(value)}\" />"
        for name, value in parameters.items()
    )
    return (
        "<?xml version=\"1.0\" encoding=\"UTF-8\"?>"
        "<Response>"
        "<Connect>"
        f"<Stream url=\"{escape(stream_url)}\">{params}</Stream>"
        "</Connect>"
        "</Response>"
    )


def _stream_url(request: Request) -> str:
    settings = get_settings()
    if settings.media_stream_url:
        return settings.media_stream_url
    # Fallback to request host. This may not work behind proxies; prefer PUBLIC_WS_URL.
    return to_ws_url(str(request.base_url).rstrip("/")) + settings.media_stream_path


@router.api_route("/voice", methods=["GET", "POST"])
async def twilio_voice_webhook(request: Request) -> Response:
    if request.method == "POST":
        form = await request.form()
        call_sid = str(form.get("CallSid") or "").strip()
        caller = str(form.get("From") or "").strip()
    else:
        call_sid = str(request.query_params.get("CallSid") or "").strip()
        caller = str(request.query_params.get("From") or "").strip()

    if not call_sid:
        raise HTTPException(status_code=400, detail="Missing CallSid")

    LOGGER.info("Voice webhook hit: call_sid=%s from=%s", call_sid, caller or "unknown")
    return _twiml_response(
        _twiml_connect_stream(
            stream_url=_stream_url(request),
            parameters={"callSid": call_sid},
        )
    )
