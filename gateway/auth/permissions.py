"""Mapping of (method, path) to (resource, action) and permission checks."""

from dataclasses import dataclass
from typing import Optional

from gateway.exceptions import InvalidRequestError, NotFoundError
from gateway.models.api_key import ApiKey
from gateway.models.permissions import Action, Resource

_WRITE_ACTIONS = {
    "POST": Action.CREATE,
    "PUT": Action.UPDATE,
    "PATCH": Action.UPDATE,
    "DELETE": Action.DELETE,
}


@dataclass(frozen=True)
class Operation:
    """
    A resolved gateway operation.

    Attributes:
        resource: First path segment
        action: Action derived from the method and path depth
        resource_id: Second path segment, if any
        sub_path: Remaining segments after the id
    """

    resource: Resource
    action: Action
    resource_id: Optional[str] = None
    sub_path: tuple[str, ...] = ()


def path_segments(path: str) -> list[str]:
    """Split a path into non-empty segments, ignoring any query string."""
    return [segment for segment in path.split("?", 1)[0].split("/") if segment]


def resolve_operation(method: str, path: str) -> Operation:
    """
    Resolve the resource and action addressed by a request.

    GET with an id segment is `read`, GET on the collection is `list`,
    POST is `create`, PUT/PATCH are `update` and DELETE is `delete`.

    Args:
        method: HTTP method
        path: Request path, e.g. `/properties/123`

    Returns:
        The resolved Operation

    Raises:
        InvalidRequestError: If the method is not supported
        NotFoundError: If the path does not name a known resource
    """
    method = method.upper()
    segments = path_segments(path)
    if not segments:
        raise NotFoundError(message="No resource in request path")

    try:
        resource = Resource(segments[0])
    except ValueError:
        raise NotFoundError(
            message=f"Unknown resource: {segments[0]}", resource=segments[0]
        )

    resource_id = segments[1] if len(segments) > 1 else None

    if method == "GET":
        action = Action.READ if resource_id else Action.LIST
    elif method in _WRITE_ACTIONS:
        action = _WRITE_ACTIONS[method]
    else:
        raise InvalidRequestError(
            message=f"Unsupported method: {method}", details={"method": method}
        )

    return Operation(
        resource=resource,
        action=action,
        resource_id=resource_id,
        sub_path=tuple(segments[2:]),
    )


def has_permission(api_key: ApiKey, resource: Resource, action: Action) -> bool:
    """Whether the key's permission set grants `action` on `resource`."""
    return api_key.can(resource, action)
