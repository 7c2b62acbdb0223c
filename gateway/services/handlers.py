"""Owner-scoped resource handlers behind the request dispatcher."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from gateway.auth.permissions import Operation
from gateway.exceptions import InvalidRequestError, NotFoundError
from gateway.models.api_key import ApiKey
from gateway.models.permissions import Action, Resource
from gateway.models.webhook import WebhookEvent
from gateway.repositories.resource_repository import IMMUTABLE_FIELDS, ResourceBackend
from gateway.schemas.webhook import CreateWebhookRequest, UpdateWebhookRequest
from gateway.services.webhook_service import WebhookRegistry

ACTIVE_OFFER_STATUSES = ("pendiente", "aceptada")
COMPLETED_OFFER_STATUSES = ("completada",)
COMPLETED_TASK_STATUS = "completed"


@dataclass
class HandlerContext:
    """Everything a handler may use; `owner_id` scopes every data access."""

    owner_id: str
    api_key: ApiKey
    operation: Operation
    body: Any = None
    query: Dict[str, str] = field(default_factory=dict)
    request_id: str = ""


@dataclass
class HandlerResult:
    """Handler output plus the domain events it produced."""

    data: Any = None
    events: List[Tuple[WebhookEvent, Any]] = field(default_factory=list)
    created: bool = False


@dataclass(frozen=True)
class ResourceSpec:
    """Supported actions of a generic resource and the events they emit."""

    actions: frozenset
    created: Optional[WebhookEvent] = None
    updated: Optional[WebhookEvent] = None
    deleted: Optional[WebhookEvent] = None


_READS = frozenset({Action.LIST, Action.READ})

RESOURCE_SPECS: Dict[Resource, ResourceSpec] = {
    Resource.PROPERTIES: ResourceSpec(
        actions=frozenset(Action),
        created=WebhookEvent.PROPERTY_CREATED,
        updated=WebhookEvent.PROPERTY_UPDATED,
        deleted=WebhookEvent.PROPERTY_DELETED,
    ),
    Resource.OFFERS: ResourceSpec(
        actions=_READS | {Action.CREATE, Action.UPDATE},
        created=WebhookEvent.OFFER_CREATED,
        updated=WebhookEvent.OFFER_UPDATED,
    ),
    Resource.TASKS: ResourceSpec(
        actions=_READS | {Action.CREATE, Action.UPDATE},
        created=WebhookEvent.TASK_CREATED,
        updated=WebhookEvent.TASK_UPDATED,
    ),
    Resource.DOCUMENTS: ResourceSpec(
        actions=_READS | {Action.CREATE, Action.DELETE},
        created=WebhookEvent.DOCUMENT_UPLOADED,
    ),
    Resource.COMMUNICATIONS: ResourceSpec(
        actions=_READS | {Action.CREATE},
        created=WebhookEvent.COMMUNICATION_SENT,
    ),
    Resource.TEMPLATES: ResourceSpec(actions=frozenset(Action)),
}


def _unsupported(operation: Operation) -> NotFoundError:
    return NotFoundError(
        message=f"Operation not supported: {operation.action} {operation.resource}",
        resource=operation.resource,
    )


def _require_object(body: Any) -> Dict[str, Any]:
    if not isinstance(body, dict):
        raise InvalidRequestError(message="Request body must be a JSON object")
    return body


class ResourceHandlers:
    """
    Routes an operation to the handler for its resource.

    Handlers never see another owner's data: every backend call carries
    the validated owner id from the context.
    """

    def __init__(self, backend: ResourceBackend, registry: WebhookRegistry) -> None:
        self.backend = backend
        self.registry = registry

    async def handle(self, ctx: HandlerContext) -> HandlerResult:
        """
        Execute an operation.

        Raises:
            NotFoundError: Unknown record or unsupported operation
            InvalidRequestError: Malformed request body
        """
        resource = ctx.operation.resource
        if ctx.operation.sub_path:
            raise _unsupported(ctx.operation)
        if resource == Resource.USERS:
            return await self._users(ctx)
        if resource == Resource.ANALYTICS:
            return await self._analytics(ctx)
        if resource == Resource.WEBHOOKS:
            return await self._webhooks(ctx)

        spec = RESOURCE_SPECS[resource]
        if ctx.operation.action not in spec.actions:
            raise _unsupported(ctx.operation)
        return await self._generic(ctx, spec)

    async def _generic(self, ctx: HandlerContext, spec: ResourceSpec) -> HandlerResult:
        op = ctx.operation
        resource = str(op.resource)

        if op.action == Action.LIST:
            return HandlerResult(data=await self.backend.list_owned(resource, ctx.owner_id))

        if op.action == Action.CREATE:
            record = await self.backend.create(
                resource, ctx.owner_id, _require_object(ctx.body)
            )
            events = [(spec.created, record)] if spec.created else []
            return HandlerResult(data=record, events=events, created=True)

        if op.action == Action.READ:
            record = await self.backend.get(resource, op.resource_id, ctx.owner_id)
            if record is None:
                raise NotFoundError(resource=resource, resource_id=op.resource_id)
            return HandlerResult(data=record)

        if op.action == Action.UPDATE:
            if not op.resource_id:
                raise _unsupported(op)
            changes = {
                k: v
                for k, v in _require_object(ctx.body).items()
                if k not in IMMUTABLE_FIELDS
            }
            outcome = await self.backend.update(
                resource, op.resource_id, ctx.owner_id, changes
            )
            if outcome is None:
                raise NotFoundError(resource=resource, resource_id=op.resource_id)
            before, after = outcome
            return HandlerResult(
                data=after, events=self._update_events(op.resource, spec, before, after, changes)
            )

        if not op.resource_id:
            raise _unsupported(op)
        if not await self.backend.delete(resource, op.resource_id, ctx.owner_id):
            raise NotFoundError(resource=resource, resource_id=op.resource_id)
        events = (
            [(spec.deleted, {"id": op.resource_id, "owner_id": ctx.owner_id})]
            if spec.deleted
            else []
        )
        return HandlerResult(data={"id": op.resource_id, "deleted": True}, events=events)

    @staticmethod
    def _update_events(
        resource: Resource,
        spec: ResourceSpec,
        before: Dict[str, Any],
        after: Dict[str, Any],
        changes: Dict[str, Any],
    ) -> List[Tuple[WebhookEvent, Any]]:
        events: List[Tuple[WebhookEvent, Any]] = []
        if (
            resource == Resource.OFFERS
            and "status" in changes
            and before.get("status") != after.get("status")
        ):
            events.append(
                (
                    WebhookEvent.OFFER_STATUS_CHANGED,
                    {
                        **after,
                        "old_status": before.get("status"),
                        "new_status": after.get("status"),
                    },
                )
            )
        if resource == Resource.TASKS and changes.get("status") == COMPLETED_TASK_STATUS:
            events.append((WebhookEvent.TASK_COMPLETED, after))
        if spec.updated:
            events.append((spec.updated, after))
        return events

    async def _users(self, ctx: HandlerContext) -> HandlerResult:
        # A key only ever sees its owner's profile
        op = ctx.operation
        if op.action not in _READS:
            raise _unsupported(op)
        if op.action == Action.READ and op.resource_id != ctx.owner_id:
            raise NotFoundError(resource="users", resource_id=op.resource_id)

        profile = await self.backend.get(str(Resource.USERS), ctx.owner_id, ctx.owner_id)
        if op.action == Action.LIST:
            return HandlerResult(data=[profile] if profile else [])
        if profile is None:
            raise NotFoundError(resource="users", resource_id=op.resource_id)
        return HandlerResult(data=profile)

    async def _analytics(self, ctx: HandlerContext) -> HandlerResult:
        if ctx.operation.action not in _READS:
            raise _unsupported(ctx.operation)

        owner_id = ctx.owner_id
        total_properties = await self.backend.count(str(Resource.PROPERTIES), owner_id)
        total_offers = await self.backend.count(str(Resource.OFFERS), owner_id)
        active_offers = await self.backend.count(
            str(Resource.OFFERS), owner_id, ACTIVE_OFFER_STATUSES
        )
        completed_offers = await self.backend.count(
            str(Resource.OFFERS), owner_id, COMPLETED_OFFER_STATUSES
        )
        conversion_rate = (
            round(completed_offers / total_offers * 100, 2) if total_offers else 0.0
        )

        return HandlerResult(
            data={
                "ownerId": owner_id,
                "metrics": {
                    "totalProperties": total_properties,
                    "totalOffers": total_offers,
                    "activeOffers": active_offers,
                    "completedOffers": completed_offers,
                    "conversionRate": conversion_rate,
                },
                "timestamp": datetime.now(UTC).isoformat(),
            }
        )

    async def _webhooks(self, ctx: HandlerContext) -> HandlerResult:
        op = ctx.operation
        owner_id = ctx.owner_id

        try:
            if op.action == Action.LIST:
                return HandlerResult(
                    data=[w.redacted() for w in self.registry.list(owner_id)]
                )
            if op.action == Action.READ:
                return HandlerResult(
                    data=self.registry.get(op.resource_id, owner_id).redacted()
                )
            if op.action == Action.CREATE:
                request = CreateWebhookRequest.model_validate(_require_object(ctx.body))
                webhook = await self.registry.register(request, owner_id)
                # The secret is returned once, at registration
                return HandlerResult(
                    data={**webhook.redacted(), "secret": webhook.secret}, created=True
                )
            if op.action == Action.UPDATE and op.resource_id:
                request = UpdateWebhookRequest.model_validate(_require_object(ctx.body))
                webhook = await self.registry.update(op.resource_id, request, owner_id)
                return HandlerResult(data=webhook.redacted())
            if op.action == Action.DELETE and op.resource_id:
                await self.registry.delete(op.resource_id, owner_id)
                return HandlerResult(data={"id": op.resource_id, "deleted": True})
        except ValidationError as e:
            raise InvalidRequestError(
                message="Invalid webhook configuration",
                details={"errors": e.errors(include_url=False, include_context=False)},
            )
        raise _unsupported(op)
