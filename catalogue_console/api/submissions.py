"""Submission endpoints for form owners.

The public write path lives on the forms router
(``POST /api/forms/{form_id}/submissions``).
"""

import logging
import re
from typing import Any

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from catalogue_console.api.models import SuccessResponse
from catalogue_console.audit import get_audit_logger
from catalogue_console.auth.api_key import Principal
from catalogue_console.auth.roles import require_editor, require_readonly
from catalogue_console.catalogue.models import CamelModel
from catalogue_console.db import get_db
from catalogue_console.forms.store import SubmissionStore, submission_to_dict

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/submissions", tags=["submissions"])


class BulkDeleteRequest(CamelModel):
    ids: Any = None


class BulkDeleteResponse(CamelModel):
    success: bool
    deleted_count: int


@router.get("")
async def list_submissions(
    principal: Principal = require_readonly,
    db: Session = Depends(get_db),
) -> list[dict]:
    """Submissions to all of the caller's forms, newest first."""
    return SubmissionStore(db).list_for_owner(principal)


@router.get("/form/{form_id}")
async def list_form_submissions(
    form_id: str,
    principal: Principal = require_readonly,
    db: Session = Depends(get_db),
) -> list[dict]:
    return [submission_to_dict(s) for s in SubmissionStore(db).list_for_form(form_id, principal)]


@router.get("/export/{form_id}")
async def export_submissions(
    form_id: str,
    request: Request,
    principal: Principal = require_readonly,
    db: Session = Depends(get_db),
) -> JSONResponse:
    """All submissions of one form as a downloadable JSON document."""
    export = SubmissionStore(db).export(form_id, principal)
    filename = re.sub(r"[^a-z0-9]", "_", export["formTitle"], flags=re.IGNORECASE)
    get_audit_logger().log_access(
        action="submission.export",
        principal_id=principal.key_id,
        resource=form_id,
        details={"count": export["totalSubmissions"]},
        request=request,
    )
    return JSONResponse(
        content=export,
        headers={"Content-Disposition": f'attachment; filename="{filename}_submissions.json"'},
    )


@router.get("/stats/{form_id}")
async def submission_stats(
    form_id: str,
    principal: Principal = require_readonly,
    db: Session = Depends(get_db),
) -> dict:
    return SubmissionStore(db).stats(form_id, principal)


@router.delete("/bulk", response_model=BulkDeleteResponse)
async def bulk_delete_submissions(
    body: BulkDeleteRequest,
    request: Request,
    principal: Principal = require_editor,
    db: Session = Depends(get_db),
) -> BulkDeleteResponse:
    """Delete several submissions at once; every one must belong to the caller."""
    deleted = SubmissionStore(db).bulk_delete(body.ids, principal)
    get_audit_logger().log_access(
        action="submission.bulk_delete",
        principal_id=principal.key_id,
        details={"count": deleted},
        request=request,
    )
    return BulkDeleteResponse(success=True, deleted_count=deleted)


@router.get("/{submission_id}")
async def get_submission(
    submission_id: str,
    principal: Principal = require_readonly,
    db: Session = Depends(get_db),
) -> dict:
    """One submission with its form's title and schema."""
    return SubmissionStore(db).get(submission_id, principal)


@router.delete("/{submission_id}", response_model=SuccessResponse)
async def delete_submission(
    submission_id: str,
    request: Request,
    principal: Principal = require_editor,
    db: Session = Depends(get_db),
) -> SuccessResponse:
    SubmissionStore(db).delete(submission_id, principal)
    get_audit_logger().log_access(
        action="submission.delete",
        principal_id=principal.key_id,
        resource=submission_id,
        request=request,
    )
    return SuccessResponse(success=True, message="Submission deleted")
