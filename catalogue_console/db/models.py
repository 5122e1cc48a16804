"""SQLAlchemy ORM models for forms and their submissions."""

from datetime import datetime, timezone

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, relationship


def utcnow() -> datetime:
    """Naive UTC now, as stored in DateTime columns."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    """Base class for all SQLAlchemy models."""

    pass


class Form(Base):
    """A form definition.

    ``schema`` holds the whole section/field tree as JSON. ``slug`` is
    assigned on publish and addresses the public form.
    """

    __tablename__ = "forms"

    id = Column(String(36), primary_key=True)  # UUID
    title = Column(String(255), nullable=False)
    description = Column(Text, nullable=True)
    slug = Column(String(36), nullable=True)
    schema = Column(JSON, nullable=False)
    status = Column(String(20), default="draft", nullable=False)  # draft | published
    mode = Column(String(20), default="simple", nullable=False)  # simple | advanced

    author_name = Column(String(255), nullable=True)
    author_email = Column(String(255), nullable=True)
    author_organization = Column(String(255), nullable=True)

    # Principal key_id of the creator; forms are owner-scoped
    owner_id = Column(String(255), nullable=True)
    owner_login = Column(String(255), nullable=True)

    cloned_from = Column(String(36), nullable=True)

    created_at = Column(DateTime, default=utcnow, nullable=False)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow, nullable=False)
    published_at = Column(DateTime, nullable=True)

    submissions = relationship(
        "Submission",
        back_populates="form",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )

    __table_args__ = (
        Index("idx_forms_slug", "slug"),
        Index("idx_forms_owner", "owner_id"),
        Index("idx_forms_status", "status"),
    )

    def __repr__(self) -> str:
        return f"<Form(id={self.id!r}, title={self.title!r}, status={self.status!r})>"


class Submission(Base):
    """One response to a form."""

    __tablename__ = "submissions"

    id = Column(String(36), primary_key=True)  # UUID
    form_id = Column(String(36), ForeignKey("forms.id", ondelete="CASCADE"), nullable=False)
    session_id = Column(String(36), nullable=False)
    is_test = Column(Boolean, default=False, nullable=False)
    field_values = Column(JSON, nullable=False)
    proof_presentations = Column(JSON, nullable=True)
    submitted_at = Column(DateTime, default=utcnow, nullable=False)

    form = relationship("Form", back_populates="submissions")

    __table_args__ = (
        Index("idx_submissions_form", "form_id"),
        Index("idx_submissions_submitted_at", "submitted_at"),
    )

    def __repr__(self) -> str:
        return f"<Submission(id={self.id!r}, form_id={self.form_id!r})>"
