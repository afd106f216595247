"""ORM models exposed by the wedding planner application."""
from .task import Task
from .microsoft_auth import CREDENTIAL_ID, MicrosoftAuth

__all__ = ["Task", "MicrosoftAuth", "CREDENTIAL_ID"]
