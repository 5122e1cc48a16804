"""Form builder endpoints.

Forms are owned by the principal that created them. Drafts are private to
their owner; published forms can be read and cloned by anyone signed in and
fetched publicly by slug.
"""

import logging
from typing import Any, Optional

from fastapi import APIRouter, Depends, Request
from pydantic import Field
from sqlalchemy.orm import Session

from catalogue_console.api.models import SuccessResponse
from catalogue_console.audit import get_audit_logger
from catalogue_console.auth.api_key import Principal
from catalogue_console.auth.roles import require_editor, require_readonly
from catalogue_console.catalogue.models import CamelModel
from catalogue_console.db import get_db
from catalogue_console.forms.store import (
    FormStore,
    SubmissionStore,
    form_to_dict,
    submission_to_dict,
)

log = logging.getLogger(__name__)
router = APIRouter(prefix="/api/forms", tags=["forms"])


class FormWrite(CamelModel):
    """Create/update body. On PUT only the keys sent are changed."""

    title: Optional[str] = None
    description: Optional[str] = None
    schema_: Optional[dict[str, Any]] = Field(None, alias="schema")
    mode: Optional[str] = None
    author_name: Optional[str] = None
    author_email: Optional[str] = None
    author_organization: Optional[str] = None


class SubmissionCreate(CamelModel):
    field_values: Any = None
    session_id: Optional[str] = None
    proof_presentations: Any = None
    is_test: bool = False


class SubmissionCreated(CamelModel):
    id: str
    message: str
    submitted_at: str


class MigrationResponse(CamelModel):
    success: bool
    message: str
    migrated_count: int


def _payload(body: FormWrite) -> dict[str, Any]:
    return body.model_dump(by_alias=True, exclude_unset=True)


@router.get("")
async def list_forms(
    principal: Principal = require_readonly,
    db: Session = Depends(get_db),
) -> list[dict]:
    """The caller's forms, most recently updated first."""
    return [form_to_dict(f) for f in FormStore(db).list_for_owner(principal)]


@router.post("/migrate/field-types", response_model=MigrationResponse)
async def migrate_field_types(
    request: Request,
    principal: Principal = require_editor,
    db: Session = Depends(get_db),
) -> MigrationResponse:
    """Rewrite legacy ``verified-credential`` fields in every stored form."""
    migrated = FormStore(db).migrate_field_types()
    get_audit_logger().log_access(
        action="form.migrate_field_types",
        principal_id=principal.key_id,
        details={"migrated": migrated},
        request=request,
    )
    return MigrationResponse(
        success=True,
        message=f"Migrated {migrated} form(s) from verified-credential to verifiable-credential",
        migrated_count=migrated,
    )


@router.get("/slug/{slug}")
async def get_form_by_slug(slug: str, db: Session = Depends(get_db)) -> dict:
    """A published form by its public slug. No authentication."""
    return form_to_dict(FormStore(db).get_by_slug(slug))


@router.get("/{form_id}")
async def get_form(
    form_id: str,
    principal: Principal = require_readonly,
    db: Session = Depends(get_db),
) -> dict:
    return form_to_dict(FormStore(db).get_visible(form_id, principal))


@router.post("", status_code=201)
async def create_form(
    body: FormWrite,
    request: Request,
    principal: Principal = require_editor,
    db: Session = Depends(get_db),
) -> dict:
    form = FormStore(db).create(_payload(body), principal)
    get_audit_logger().log_access(
        action="form.create", principal_id=principal.key_id, resource=form.id, request=request
    )
    return form_to_dict(form)


@router.put("/{form_id}")
async def update_form(
    form_id: str,
    body: FormWrite,
    principal: Principal = require_editor,
    db: Session = Depends(get_db),
) -> dict:
    """Partial update of a draft. Published forms are read-only."""
    # Auto-save calls this every few seconds; not audited
    return form_to_dict(FormStore(db).update(form_id, _payload(body), principal))


@router.delete("/{form_id}", response_model=SuccessResponse)
async def delete_form(
    form_id: str,
    request: Request,
    principal: Principal = require_editor,
    db: Session = Depends(get_db),
) -> SuccessResponse:
    """Delete a form and all of its submissions."""
    FormStore(db).delete(form_id, principal)
    get_audit_logger().log_access(
        action="form.delete", principal_id=principal.key_id, resource=form_id, request=request
    )
    return SuccessResponse(success=True, message="Form deleted")


@router.put("/{form_id}/publish")
async def publish_form(
    form_id: str,
    request: Request,
    principal: Principal = require_editor,
    db: Session = Depends(get_db),
) -> dict:
    """Publish a draft under a fresh slug."""
    form = FormStore(db).publish(form_id, principal)
    get_audit_logger().log_access(
        action="form.publish",
        principal_id=principal.key_id,
        resource=form_id,
        details={"slug": form.slug},
        request=request,
    )
    return form_to_dict(form)


@router.put("/{form_id}/unpublish")
async def unpublish_form(
    form_id: str,
    request: Request,
    principal: Principal = require_editor,
    db: Session = Depends(get_db),
) -> dict:
    form = FormStore(db).unpublish(form_id, principal)
    get_audit_logger().log_access(
        action="form.unpublish", principal_id=principal.key_id, resource=form_id, request=request
    )
    return form_to_dict(form)


@router.post("/{form_id}/clone", status_code=201)
async def clone_form(
    form_id: str,
    request: Request,
    principal: Principal = require_editor,
    db: Session = Depends(get_db),
) -> dict:
    """Copy a form (own or published) into a new draft owned by the caller."""
    form = FormStore(db).clone(form_id, principal)
    get_audit_logger().log_access(
        action="form.clone",
        principal_id=principal.key_id,
        resource=form.id,
        details={"cloned_from": form_id},
        request=request,
    )
    return form_to_dict(form)


@router.post("/{form_id}/submissions", response_model=SubmissionCreated, status_code=201)
async def submit_form(
    form_id: str,
    body: SubmissionCreate,
    db: Session = Depends(get_db),
) -> SubmissionCreated:
    """Public submission endpoint. Drafts accept test submissions only."""
    submission = SubmissionStore(db).submit(form_id, body.model_dump(by_alias=True))
    return SubmissionCreated(
        id=submission.id,
        message="Form submitted successfully",
        submitted_at=submission_to_dict(submission)["submittedAt"],
    )
