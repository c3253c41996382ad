"""Shared enumerations used across the controller."""

from __future__ import annotations

from enum import StrEnum

# -- Workspace ---------------------------------------------------------------


class DesiredStatus(StrEnum):
    RUNNING = "Running"
    STOPPED = "Stopped"


class OwnershipType(StrEnum):
    PUBLIC = "Public"
    OWNER_ONLY = "OwnerOnly"


# -- Resolution --------------------------------------------------------------


class TemplateTier(StrEnum):
    """Namespace tier searched during template resolution, in priority order."""

    EXPLICIT = "explicit"
    WORKSPACE = "workspace"
    DEFAULT = "default"


# -- Status ------------------------------------------------------------------


class ConditionStatus(StrEnum):
    TRUE = "True"
    FALSE = "False"
    UNKNOWN = "Unknown"


class ConditionType(StrEnum):
    TEMPLATE_RESOLVED = "TemplateResolved"


class ConditionReason(StrEnum):
    RESOLVED = "Resolved"
    TEMPLATE_NOT_FOUND = "TemplateNotFound"
    STORE_UNAVAILABLE = "StoreUnavailable"


# -- Watch -------------------------------------------------------------------


class WatchEventType(StrEnum):
    """Raw watch event types, as reported by kopf event handlers."""

    ADDED = "ADDED"
    MODIFIED = "MODIFIED"
    DELETED = "DELETED"


# -- Admission ---------------------------------------------------------------


class AdmissionOperation(StrEnum):
    CREATE = "CREATE"
    UPDATE = "UPDATE"
    DELETE = "DELETE"
    CONNECT = "CONNECT"
