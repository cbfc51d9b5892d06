"""
Built-in graph packages.

Both packages are independently installable. They are kept in their wire
form and validated on every lookup, so callers always get a fresh
``GraphPackage`` they are free to modify.
"""

from typing import Any, Dict, List

from ..errors import NotFoundError
from .contracts import GraphPackage

HR_LITE: Dict[str, Any] = {
    "key": "hr-lite",
    "name": "HR Lite",
    "version": "1.0.0",
    "description": "Basic HR management: employees, departments, PTO requests",
    "recordTypes": [
        {
            "key": "hr_department",
            "name": "Department",
            "fields": [
                {"name": "name", "type": "string", "required": True},
                {"name": "code", "type": "string", "required": True},
                {"name": "head", "type": "reference"},
            ],
        },
        {
            "key": "hr_employee",
            "name": "Employee",
            "fields": [
                {"name": "name", "type": "string", "required": True},
                {"name": "email", "type": "string", "required": True},
                {"name": "department", "type": "reference"},
                {"name": "start_date", "type": "date"},
                {"name": "role", "type": "string"},
            ],
        },
        {
            "key": "hr_pto_request",
            "name": "PTO Request",
            "fields": [
                {"name": "employee", "type": "reference", "required": True},
                {"name": "start_date", "type": "date", "required": True},
                {"name": "end_date", "type": "date", "required": True},
                {"name": "type", "type": "choice"},
                {"name": "status", "type": "choice"},
                {"name": "notes", "type": "text"},
            ],
        },
    ],
    "workflows": [
        {
            "key": "hr_pto_approval",
            "name": "PTO Approval",
            "triggerType": "record_event",
            "steps": [
                {"stepType": "approval", "orderIndex": 0},
                {"stepType": "notification", "orderIndex": 1},
            ],
        },
    ],
}

ITSM_LITE: Dict[str, Any] = {
    "key": "itsm-lite",
    "name": "ITSM Lite",
    "version": "1.0.0",
    "description": "Basic IT service management: incidents, problems, changes",
    "recordTypes": [
        {
            "key": "itsm_task",
            "name": "ITSM Task",
            "fields": [
                {"name": "title", "type": "string", "required": True},
                {"name": "description", "type": "text"},
                {"name": "status", "type": "choice"},
                {"name": "priority", "type": "choice"},
                {"name": "assigned_to", "type": "reference"},
            ],
        },
        {
            "key": "itsm_incident",
            "name": "Incident",
            "baseType": "itsm_task",
            "fields": [
                {"name": "severity", "type": "choice", "required": True},
                {"name": "impact", "type": "choice"},
                {"name": "category", "type": "choice"},
                {"name": "resolution", "type": "text"},
            ],
        },
        {
            "key": "itsm_problem",
            "name": "Problem",
            "baseType": "itsm_task",
            "fields": [
                {"name": "root_cause", "type": "text"},
                {"name": "workaround", "type": "text"},
                {"name": "related_incidents", "type": "reference"},
            ],
        },
        {
            "key": "itsm_change_request",
            "name": "Change Request",
            "baseType": "itsm_task",
            "fields": [
                {"name": "risk_level", "type": "choice"},
                {"name": "implementation_plan", "type": "text"},
                {"name": "rollback_plan", "type": "text"},
                {"name": "scheduled_date", "type": "datetime"},
            ],
        },
    ],
    "workflows": [
        {
            "key": "itsm_incident_workflow",
            "name": "Incident Response",
            "triggerType": "record_event",
            "steps": [
                {"stepType": "assignment", "orderIndex": 0},
                {"stepType": "notification", "orderIndex": 1},
            ],
        },
        {
            "key": "itsm_change_approval",
            "name": "Change Approval",
            "triggerType": "record_event",
            "steps": [
                {"stepType": "approval", "orderIndex": 0},
                {"stepType": "notification", "orderIndex": 1},
            ],
        },
    ],
}

_BUILTINS: Dict[str, Dict[str, Any]] = {
    HR_LITE["key"]: HR_LITE,
    ITSM_LITE["key"]: ITSM_LITE,
}


def get_builtin_package(key: str) -> GraphPackage:
    """A fresh copy of the built-in package ``key``."""
    raw = _BUILTINS.get(key)
    if raw is None:
        raise NotFoundError(f'Built-in package "{key}" not found')
    return GraphPackage.model_validate(raw)


def builtin_packages() -> List[GraphPackage]:
    """Fresh copies of every built-in package."""
    return [GraphPackage.model_validate(raw) for raw in _BUILTINS.values()]
