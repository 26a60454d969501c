"""Manual email sending."""

from pathlib import Path
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from leadcrm.api.deps import get_db_path, get_settings, require_cron_secret
from leadcrm.clients.brevo import BrevoError
from leadcrm.core.config import Settings
from leadcrm.outreach.sender import send_contact_email

router = APIRouter(dependencies=[Depends(require_cron_secret)])


class SendEmailRequest(BaseModel):
    to_email: str = ""
    subject: str = ""
    html_content: str = ""
    contact_id: Optional[int] = None
    to_name: Optional[str] = None
    include_icebreaker: bool = True
    is_first_email: bool = True


@router.post("/send")
async def send(
    body: SendEmailRequest,
    db_path: Path = Depends(get_db_path),
    settings: Settings = Depends(get_settings),
):
    try:
        return await send_contact_email(
            db_path,
            settings,
            to_email=body.to_email,
            subject=body.subject,
            html_content=body.html_content,
            contact_id=body.contact_id,
            to_name=body.to_name,
            include_icebreaker=body.include_icebreaker,
            is_first_email=body.is_first_email,
        )
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except LookupError:
        raise HTTPException(status_code=404, detail="Contact non trouvé")
    except BrevoError as e:
        raise HTTPException(status_code=502, detail=str(e))
