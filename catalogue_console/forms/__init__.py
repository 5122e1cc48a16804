"""Forms suite: schema model, persistence and the schema editor."""

from catalogue_console.forms.editor import AutoSaver, FormEditor
from catalogue_console.forms.schema import FormSchema, default_schema, parse_schema
from catalogue_console.forms.store import FormStore, SubmissionStore

__all__ = [
    "AutoSaver",
    "FormEditor",
    "FormSchema",
    "FormStore",
    "SubmissionStore",
    "default_schema",
    "parse_schema",
]
