"""Centralized SQLModel imports to ensure metadata is populated."""

from pantry.backend.models import user as _user  # noqa: F401
from pantry.backend.models import grocery as _grocery  # noqa: F401
from pantry.backend.models import refresh_token as _refresh_token  # noqa: F401
