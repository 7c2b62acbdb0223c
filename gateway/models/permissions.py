"""Capability model: resources, actions and permissions."""

from enum import StrEnum
from typing import List

from pydantic import BaseModel, Field, field_validator


class Resource(StrEnum):
    """Resources exposed through the external API."""

    PROPERTIES = "properties"
    OFFERS = "offers"
    USERS = "users"
    TASKS = "tasks"
    DOCUMENTS = "documents"
    COMMUNICATIONS = "communications"
    TEMPLATES = "templates"
    ANALYTICS = "analytics"
    WEBHOOKS = "webhooks"


class Action(StrEnum):
    """Actions a key may perform on a resource."""

    READ = "read"
    LIST = "list"
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


class Permission(BaseModel):
    """
    A resource paired with the actions allowed on it.

    Attributes:
        resource: Resource the permission applies to
        actions: Ordered, de-duplicated actions granted on the resource
    """

    resource: Resource = Field(..., description="Resource name")
    actions: List[Action] = Field(
        default_factory=list, description="Allowed actions"
    )

    @field_validator("actions")
    @classmethod
    def dedupe_actions(cls, v: List[Action]) -> List[Action]:
        """Drop repeated actions while keeping their first position."""
        return list(dict.fromkeys(v))

    def allows(self, action: Action) -> bool:
        """Check whether this permission grants an action."""
        return action in self.actions

    def __str__(self) -> str:
        return f"{self.resource}:{','.join(self.actions)}"
