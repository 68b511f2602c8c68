"""
Email demo routes for Multimail.

/simple/send carries no marker and uses the default transport. The
other two routes are marked with the EmailOffice365 template; when that
template is not configured they fall back to the default transport.
"""

import logging
from datetime import datetime
from typing import Any, Optional

from fastapi import APIRouter, Depends, File, Form, UploadFile

from multimail.app.dependencies import get_dispatcher, get_mail_context
from multimail.context import MailContext
from multimail.dispatch import MailDispatcher
from multimail.messages import SimpleMessage, UploadedFile
from multimail.selector import use_template

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/site/email", tags=["email"])

OFFICE365_TEMPLATE = "EmailOffice365"


@router.post("/simple/send")
async def send_simple_email(
    message: SimpleMessage,
    ctx: MailContext = Depends(get_mail_context),
    dispatcher: MailDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Send a plain-text message through the default transport."""
    logger.info(f"Attempting to send simple email to {message.to}")
    result = await dispatcher.send_simple(message, ctx=ctx)
    return {"message": "Simple email sent successfully.", **result.to_dict()}


@router.post("/mime/send")
@use_template(OFFICE365_TEMPLATE)
async def send_mime_email(
    to: str = Form(...),
    subject: str = Form(...),
    text: str = Form(...),
    cc: Optional[list[str]] = Form(None),
    sent_date: Optional[str] = Form(None),
    filepath: Optional[str] = Form(None),
    file: Optional[UploadFile] = File(None),
    ctx: MailContext = Depends(get_mail_context),
    dispatcher: MailDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Send an HTML-capable message with optional attachments."""
    logger.info(f"Attempting to send mime email to {to}")
    upload = None
    if file is not None:
        upload = UploadedFile(
            filename=file.filename,
            content=await file.read(),
            content_type=file.content_type,
        )
    message = {
        "to": to,
        "cc": cc,
        "sent_date": sent_date,
        "subject": subject,
        "text": text,
        "filepath": filepath,
    }
    result = await dispatcher.send_rich(message, attachment=upload, ctx=ctx)
    return {"message": "Mime email sent successfully.", **result.to_dict()}


@router.post("/simple/send/nested")
@use_template(OFFICE365_TEMPLATE)
async def send_simple_email_with_template(
    ctx: MailContext = Depends(get_mail_context),
    dispatcher: MailDispatcher = Depends(get_dispatcher),
) -> dict[str, Any]:
    """Send a fixed test message through the marked template."""
    message = SimpleMessage(
        to="test@example.com",
        subject="Test Subject from Nested Call",
        text="This is a test message sent with a specific template.",
        sent_date=datetime.now(),
    )
    logger.info(f"Attempting to send simple email with '{OFFICE365_TEMPLATE}' template")
    result = await dispatcher.send_simple(message, ctx=ctx)
    return {
        "message": f"Simple email with '{OFFICE365_TEMPLATE}' template sent successfully.",
        **result.to_dict(),
    }
