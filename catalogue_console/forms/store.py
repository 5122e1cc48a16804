"""Form and submission stores.

Forms belong to the principal that created them (``owner_id`` is the
principal's key_id). Published forms are readable by anyone signed in and
may be cloned by anyone; only the owner may edit, publish or delete.
"""

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Optional

from sqlalchemy.orm import Session

from catalogue_console.auth.api_key import Principal
from catalogue_console.db.models import Form, Submission, utcnow
from catalogue_console.forms.schema import default_schema, migrate_field_types, parse_schema
from catalogue_console.store.errors import ForbiddenError, NotFoundError, ValidationError

log = logging.getLogger(__name__)

FORM_MODES = ("simple", "advanced")


def _iso(value: Optional[datetime]) -> Optional[str]:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.isoformat()


def public_url(slug: str) -> str:
    return f"/f/{slug}"


def form_to_dict(form: Form) -> dict[str, Any]:
    """Wire representation of a form."""
    data = {
        "id": form.id,
        "title": form.title,
        "description": form.description or "",
        "slug": form.slug,
        "schema": form.schema,
        "status": form.status,
        "mode": form.mode,
        "authorName": form.author_name,
        "authorEmail": form.author_email,
        "authorOrganization": form.author_organization,
        "ownerId": form.owner_id,
        "ownerLogin": form.owner_login,
        "clonedFrom": form.cloned_from,
        "createdAt": _iso(form.created_at),
        "updatedAt": _iso(form.updated_at),
        "publishedAt": _iso(form.published_at),
    }
    if form.status == "published" and form.slug:
        data["publicUrl"] = public_url(form.slug)
    return data


def submission_to_dict(submission: Submission) -> dict[str, Any]:
    return {
        "id": submission.id,
        "formId": submission.form_id,
        "sessionId": submission.session_id,
        "isTest": submission.is_test,
        "fieldValues": submission.field_values,
        "proofPresentations": submission.proof_presentations,
        "submittedAt": _iso(submission.submitted_at),
    }


def _check_mode(mode: Any) -> None:
    if mode not in FORM_MODES:
        raise ValidationError(f"Invalid mode '{mode}'. Must be one of: {', '.join(FORM_MODES)}")


class FormStore:
    """CRUD and lifecycle for forms."""

    def __init__(self, db: Session):
        self.db = db

    def get(self, form_id: str) -> Form:
        form = self.db.get(Form, form_id)
        if form is None:
            raise NotFoundError("Form not found")
        return form

    def get_owned(self, form_id: str, principal: Principal) -> Form:
        """The form, provided ``principal`` owns it."""
        form = self.get(form_id)
        if form.owner_id != principal.key_id:
            raise ForbiddenError("Access denied")
        return form

    def get_visible(self, form_id: str, principal: Principal) -> Form:
        """The form, provided ``principal`` owns it or it is published."""
        form = self.get(form_id)
        if form.owner_id != principal.key_id and form.status != "published":
            raise ForbiddenError("Access denied")
        return form

    def get_by_slug(self, slug: str) -> Form:
        form = self.db.query(Form).filter(Form.slug == slug).first()
        if form is None:
            raise NotFoundError("Form not found")
        if form.status != "published":
            raise NotFoundError("Form not published")
        return form

    def list_for_owner(self, principal: Principal) -> list[Form]:
        return (
            self.db.query(Form)
            .filter(Form.owner_id == principal.key_id)
            .order_by(Form.updated_at.desc())
            .all()
        )

    def create(self, payload: dict[str, Any], principal: Principal) -> Form:
        title = payload.get("title")
        if not title or not str(title).strip():
            raise ValidationError("Title is required")

        mode = payload.get("mode") or "simple"
        _check_mode(mode)

        schema = payload.get("schema")
        schema = parse_schema(schema) if schema is not None else default_schema()

        form = Form(
            id=str(uuid.uuid4()),
            title=title,
            description=payload.get("description") or "",
            schema=schema.to_document(),
            status="draft",
            mode=mode,
            author_name=payload.get("authorName") or principal.name,
            author_email=payload.get("authorEmail"),
            author_organization=payload.get("authorOrganization"),
            owner_id=principal.key_id,
            owner_login=principal.login,
        )
        self.db.add(form)
        self.db.commit()
        self.db.refresh(form)
        log.info(f"Created form {form.id} for {principal.key_id}")
        return form

    def update(self, form_id: str, changes: dict[str, Any], principal: Principal) -> Form:
        """Apply a partial update to a draft.

        Only title, description, schema, mode and the author fields change;
        status and slug move through publish/unpublish.
        """
        form = self.get_owned(form_id, principal)
        if form.status == "published":
            raise ValidationError(
                "Cannot edit published form. Clone this form to create a new draft for editing."
            )

        if "title" in changes:
            if not changes["title"] or not str(changes["title"]).strip():
                raise ValidationError("Title cannot be empty")
            form.title = changes["title"]
        if "description" in changes:
            form.description = changes["description"] or ""
        if "schema" in changes:
            if changes["schema"] is None:
                raise ValidationError("Schema cannot be empty")
            form.schema = parse_schema(changes["schema"]).to_document()
        if "mode" in changes:
            _check_mode(changes["mode"])
            form.mode = changes["mode"]
        for key, column in (
            ("authorName", "author_name"),
            ("authorEmail", "author_email"),
            ("authorOrganization", "author_organization"),
        ):
            if key in changes:
                setattr(form, column, changes[key])

        form.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(form)
        return form

    def delete(self, form_id: str, principal: Principal) -> None:
        form = self.get_owned(form_id, principal)
        self.db.delete(form)
        self.db.commit()
        log.info(f"Deleted form {form_id}")

    def publish(self, form_id: str, principal: Principal) -> Form:
        form = self.get_owned(form_id, principal)
        if form.status == "published":
            raise ValidationError("Form is already published")

        now = utcnow()
        form.status = "published"
        form.slug = str(uuid.uuid4())
        form.published_at = now
        form.updated_at = now
        self.db.commit()
        self.db.refresh(form)
        log.info(f"Published form {form_id} at {public_url(form.slug)}")
        return form

    def unpublish(self, form_id: str, principal: Principal) -> Form:
        """Back to draft. The slug is kept."""
        form = self.get_owned(form_id, principal)
        if form.status != "published":
            raise ValidationError("Form is not published")

        form.status = "draft"
        form.updated_at = utcnow()
        self.db.commit()
        self.db.refresh(form)
        return form

    def clone(self, form_id: str, principal: Principal) -> Form:
        source = self.get_visible(form_id, principal)

        clone = Form(
            id=str(uuid.uuid4()),
            title=f"{source.title} (Copy)",
            description=source.description,
            schema=source.schema,
            status="draft",
            mode=source.mode,
            author_name=principal.name,
            owner_id=principal.key_id,
            owner_login=principal.login,
            cloned_from=source.id,
        )
        self.db.add(clone)
        self.db.commit()
        self.db.refresh(clone)
        log.info(f"Cloned form {form_id} -> {clone.id}")
        return clone

    def migrate_field_types(self) -> int:
        """Rewrite legacy credential field types in every stored form.

        Returns:
            Number of forms changed
        """
        migrated = 0
        for form in self.db.query(Form).all():
            document, changed = migrate_field_types(form.schema or {})
            if changed:
                form.schema = document
                form.updated_at = utcnow()
                migrated += 1
        self.db.commit()
        log.info(f"Migrated field types in {migrated} form(s)")
        return migrated


class SubmissionStore:
    """Submissions, scoped through the owning form."""

    def __init__(self, db: Session):
        self.db = db
        self.forms = FormStore(db)

    def submit(self, form_id: str, payload: dict[str, Any]) -> Submission:
        """Record a submission. Drafts only accept test submissions."""
        form = self.forms.get(form_id)
        is_test = bool(payload.get("isTest"))

        if form.status != "published" and not is_test:
            raise ValidationError("Form is not accepting submissions")

        field_values = payload.get("fieldValues")
        if not isinstance(field_values, dict):
            raise ValidationError("Field values are required")

        submission = Submission(
            id=str(uuid.uuid4()),
            form_id=form_id,
            session_id=payload.get("sessionId") or str(uuid.uuid4()),
            is_test=is_test,
            field_values=field_values,
            proof_presentations=payload.get("proofPresentations"),
        )
        self.db.add(submission)
        self.db.commit()
        self.db.refresh(submission)
        log.info(f"Submission {submission.id} for form {form_id} (test={is_test})")
        return submission

    def _get_owned(self, submission_id: str, principal: Principal) -> tuple[Submission, Form]:
        submission = self.db.get(Submission, submission_id)
        if submission is None:
            raise NotFoundError("Submission not found")
        form = self.db.get(Form, submission.form_id)
        if form is None or form.owner_id != principal.key_id:
            raise ForbiddenError("Access denied")
        return submission, form

    def list_for_owner(self, principal: Principal) -> list[dict[str, Any]]:
        """Every submission to the principal's forms, newest first, with form titles."""
        titles = {f.id: f.title for f in self.forms.list_for_owner(principal)}
        if not titles:
            return []

        submissions = (
            self.db.query(Submission)
            .filter(Submission.form_id.in_(list(titles)))
            .order_by(Submission.submitted_at.desc())
            .all()
        )
        return [
            {**submission_to_dict(s), "formTitle": titles.get(s.form_id, "Unknown Form")}
            for s in submissions
        ]

    def _for_form(self, form_id: str) -> list[Submission]:
        return (
            self.db.query(Submission)
            .filter(Submission.form_id == form_id)
            .order_by(Submission.submitted_at.desc())
            .all()
        )

    def list_for_form(self, form_id: str, principal: Principal) -> list[Submission]:
        self.forms.get_owned(form_id, principal)
        return self._for_form(form_id)

    def get(self, submission_id: str, principal: Principal) -> dict[str, Any]:
        submission, form = self._get_owned(submission_id, principal)
        return {**submission_to_dict(submission), "formTitle": form.title, "formSchema": form.schema}

    def delete(self, submission_id: str, principal: Principal) -> None:
        submission, _form = self._get_owned(submission_id, principal)
        self.db.delete(submission)
        self.db.commit()

    def bulk_delete(self, ids: Any, principal: Principal) -> int:
        """Delete several submissions; all must belong to the principal's forms.

        Returns:
            Number deleted
        """
        if not isinstance(ids, list) or not ids:
            raise ValidationError("IDs array is required")

        submissions = self.db.query(Submission).filter(Submission.id.in_(ids)).all()
        if not submissions:
            raise NotFoundError("No submissions found")

        form_ids = {s.form_id for s in submissions}
        forms = self.db.query(Form).filter(Form.id.in_(form_ids)).all()
        if len(forms) != len(form_ids) or any(f.owner_id != principal.key_id for f in forms):
            raise ForbiddenError("Access denied to some submissions")

        for submission in submissions:
            self.db.delete(submission)
        self.db.commit()
        log.info(f"Bulk deleted {len(submissions)} submissions")
        return len(submissions)

    def export(self, form_id: str, principal: Principal) -> dict[str, Any]:
        form = self.forms.get_owned(form_id, principal)
        submissions = self._for_form(form_id)
        return {
            "formId": form.id,
            "formTitle": form.title,
            "exportedAt": datetime.now(timezone.utc).isoformat(),
            "totalSubmissions": len(submissions),
            "submissions": [
                {
                    "id": s.id,
                    "submittedAt": _iso(s.submitted_at),
                    "isTest": s.is_test,
                    "fieldValues": s.field_values,
                    "proofPresentations": s.proof_presentations,
                }
                for s in submissions
            ],
        }

    def stats(self, form_id: str, principal: Principal) -> dict[str, Any]:
        self.forms.get_owned(form_id, principal)
        submissions = self._for_form(form_id)
        test = sum(1 for s in submissions if s.is_test)
        return {
            "formId": form_id,
            "total": len(submissions),
            "liveSubmissions": len(submissions) - test,
            "testSubmissions": test,
        }
