# -*- coding: utf-8 -*-
# SPDX-License-Identifier: Apache-2.0

"""
HAL (Hypertext Application Language) response formatting utilities.
Implements HATEOAS responses whose affordance links follow role and workflow state.
"""

from typing import Dict, List, Any, Optional
from urllib.parse import urljoin

from ..models.entities import (
    Identity, Contract, Message, Notification, Feedback, Profile
)
from ..models.enums import ContractStatus, FeedbackStatus, MessageStatus, ProfileStatus, UserRole
from ..models.responses import HalLink


def serialize(entity: Any) -> Dict[str, Any]:
    """JSON-ready camelCase representation of an entity."""
    return entity.model_dump(mode="json", by_alias=True)


class HalLinkBuilder:
    """Builder for HAL links with proper URL construction."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/') + '/'

    def build_link(
        self,
        path: str,
        method: str = "GET",
        content_type: Optional[str] = None,
        title: Optional[str] = None,
        templated: bool = False
    ) -> HalLink:
        """Build a HAL link with proper URL construction."""
        href = urljoin(self.base_url, path.lstrip('/'))

        return HalLink(
            href=href,
            method=method,
            type=content_type,
            title=title,
            templated=templated or None
        )

    def build_self_link(self, resource_path: str) -> HalLink:
        """Build self link for a resource."""
        return self.build_link(resource_path, title="Self")

    def build_collection_link(self, collection_path: str) -> HalLink:
        """Build link to parent collection."""
        return self.build_link(collection_path, title="Collection")

    def build_action_link(
        self,
        resource_path: str,
        action: str,
        method: str = "POST",
        title: Optional[str] = None
    ) -> HalLink:
        """Build action link for a resource."""
        action_path = f"{resource_path}/{action}"
        return self.build_link(
            action_path,
            method=method,
            content_type="application/json",
            title=title or action.title()
        )


class AffordanceLinkBuilder:
    """Builder for conditional affordance links based on role and state."""

    def __init__(self, base_url: str):
        self.link_builder = HalLinkBuilder(base_url)

    def build_profile_affordances(
        self,
        owner: Identity,
        viewer: Identity
    ) -> Dict[str, HalLink]:
        """Review links for administrators, edit link for the owner."""
        links = {}
        base_path = f"/api/profiles/{owner.id}"
        review_path = f"/api/admin/profiles/{owner.id}"

        links['self'] = self.link_builder.build_self_link(base_path)

        if viewer.id == owner.id:
            links['edit'] = self.link_builder.build_link(
                "/api/profiles/me",
                method="PUT",
                content_type="application/json",
                title="Edit profile"
            )

        if viewer.is_administrator():
            if owner.profile_status == ProfileStatus.PENDING:
                links['approve'] = self.link_builder.build_action_link(
                    review_path, "review", title="Approve profile"
                )
                links['reject'] = self.link_builder.build_action_link(
                    review_path, "review", title="Reject profile"
                )
            else:
                links['reopen'] = self.link_builder.build_action_link(
                    review_path, "reopen", title="Re-open profile"
                )

        return links

    def build_contract_affordances(
        self,
        contract: Contract,
        viewer: Identity
    ) -> Dict[str, HalLink]:
        """Sign, approve and cancel links depending on the viewer and the contract state."""
        links = {}
        base_path = f"/api/contracts/{contract.id}"

        links['self'] = self.link_builder.build_self_link(base_path)
        links['collection'] = self.link_builder.build_collection_link("/api/contracts")

        party_role = contract.party_role(viewer.id)
        if party_role is not None and party_role == viewer.role and contract.can_sign():
            if contract.signature_of(party_role) is None:
                links['sign'] = self.link_builder.build_action_link(
                    base_path, "sign", title="Sign contract"
                )

        if viewer.is_administrator() and contract.can_approve():
            links['approve'] = self.link_builder.build_action_link(
                base_path, "approve", title="Approve contract"
            )

        if (party_role is not None or viewer.is_administrator()) and contract.can_cancel():
            links['cancel'] = self.link_builder.build_action_link(
                base_path, "cancel", title="Cancel contract"
            )

        return links

    def build_message_affordances(
        self,
        message: Message,
        viewer: Identity
    ) -> Dict[str, HalLink]:
        links = {}
        base_path = f"/api/messages/{message.id}"

        links['conversation'] = self.link_builder.build_link(
            f"/api/messages/conversations/{message.counterpart_of(viewer.id)}",
            title="Conversation"
        )

        if message.receiver_id == viewer.id:
            if message.status == MessageStatus.SENT:
                links['mark_delivered'] = self.link_builder.build_action_link(
                    base_path, "delivered", title="Mark delivered"
                )
            if message.status != MessageStatus.READ:
                links['mark_read'] = self.link_builder.build_action_link(
                    base_path, "read", title="Mark read"
                )

        return links

    def build_notification_affordances(self, notification: Notification) -> Dict[str, HalLink]:
        links = {
            'collection': self.link_builder.build_collection_link("/api/notifications")
        }
        if not notification.read:
            links['mark_read'] = self.link_builder.build_action_link(
                f"/api/notifications/{notification.id}", "read", title="Mark read"
            )
        return links

    def build_feedback_affordances(
        self,
        feedback: Feedback,
        viewer: Identity
    ) -> Dict[str, HalLink]:
        links = {}
        if viewer.is_administrator() and feedback.status != FeedbackStatus.RESOLVED:
            links['respond'] = self.link_builder.build_action_link(
                f"/api/admin/feedback/{feedback.id}", "respond", title="Respond to feedback"
            )
        return links


class HalResponseBuilder:
    """Main HAL response builder."""

    def __init__(self, base_url: str):
        self.base_url = base_url.rstrip('/')
        self.link_builder = HalLinkBuilder(base_url)
        self.affordance_builder = AffordanceLinkBuilder(base_url)

    @staticmethod
    def _with_links(data: Dict[str, Any], links: Dict[str, HalLink]) -> Dict[str, Any]:
        response = dict(data)
        response['_links'] = {
            rel: link.model_dump(exclude_none=True) for rel, link in links.items()
        }
        return response

    def build_collection_response(
        self,
        items: List[Dict[str, Any]],
        collection_path: str,
        extra: Optional[Dict[str, Any]] = None
    ) -> Dict[str, Any]:
        """Build a HAL collection response with embedded items."""
        response = {
            'total': len(items),
            '_links': {
                'self': self.link_builder.build_self_link(collection_path).model_dump(exclude_none=True)
            },
            '_embedded': {
                'items': items
            }
        }
        if extra:
            response.update(extra)
        return response

    def build_error_response(
        self,
        error_type: str,
        title: str,
        status: int,
        detail: str,
        instance: str,
        validation_errors: Optional[List[Dict[str, Any]]] = None
    ) -> Dict[str, Any]:
        """Build RFC 7807 compliant error response with HAL links."""
        error_response = {
            'type': urljoin(self.base_url + '/', f"problems/{error_type}"),
            'title': title,
            'status': status,
            'detail': detail,
            'instance': instance
        }

        if validation_errors:
            error_response['errors'] = validation_errors

        links = {
            'help': self.link_builder.build_link(
                f"/docs/errors#{error_type}",
                title="Error documentation"
            )
        }

        if error_type == "validation-error":
            links['schema'] = self.link_builder.build_link(
                "/openapi/openapi.json",
                title="API schema"
            )
        elif error_type == "authentication-required":
            links['me'] = self.link_builder.build_link(
                "/api/auth/me",
                title="Current identity"
            )

        return self._with_links(error_response, links)


class HalFormatter:
    """High-level HAL formatter with convenience methods."""

    def __init__(self, base_url: str):
        self.builder = HalResponseBuilder(base_url)

    @property
    def affordances(self) -> AffordanceLinkBuilder:
        return self.builder.affordance_builder

    def format_identity(self, identity: Identity, viewer: Identity) -> Dict[str, Any]:
        links = {'self': self.builder.link_builder.build_self_link("/api/auth/me")} \
            if identity.id == viewer.id else {}
        if viewer.is_administrator() and not identity.is_administrator():
            links['promote'] = self.builder.link_builder.build_action_link(
                f"/api/admin/identities/{identity.id}", "promote", title="Promote to administrator"
            )
        if identity.id == viewer.id:
            links['live'] = self.builder.link_builder.build_link("/api/live/stream", title="Live events")
        if identity.role != UserRole.ADMINISTRATOR:
            links['profile'] = self.builder.link_builder.build_link(
                f"/api/profiles/{identity.id}", title="Profile"
            )
        return self.builder._with_links(serialize(identity), links)

    def format_profile(
        self,
        owner: Identity,
        profile: Profile,
        viewer: Identity
    ) -> Dict[str, Any]:
        """Profile fields plus the owner's identity and review status."""
        data = serialize(profile)
        data['identity'] = serialize(owner)
        return self.builder._with_links(
            data, self.affordances.build_profile_affordances(owner, viewer)
        )

    def format_profile_collection(
        self,
        pairs: List[Any],
        viewer: Identity,
        collection_path: str
    ) -> Dict[str, Any]:
        items = [self.format_profile(owner, profile, viewer) for owner, profile in pairs]
        return self.builder.build_collection_response(items, collection_path)

    def format_contract(self, contract: Contract, viewer: Identity) -> Dict[str, Any]:
        return self.builder._with_links(
            serialize(contract), self.affordances.build_contract_affordances(contract, viewer)
        )

    def format_contract_collection(
        self,
        contracts: List[Contract],
        viewer: Identity,
        collection_path: str = "/api/contracts"
    ) -> Dict[str, Any]:
        items = [self.format_contract(contract, viewer) for contract in contracts]
        return self.builder.build_collection_response(items, collection_path)

    def format_message(self, message: Message, viewer: Identity) -> Dict[str, Any]:
        return self.builder._with_links(
            serialize(message), self.affordances.build_message_affordances(message, viewer)
        )

    def format_message_collection(
        self,
        messages: List[Message],
        viewer: Identity,
        collection_path: str
    ) -> Dict[str, Any]:
        items = [self.format_message(message, viewer) for message in messages]
        return self.builder.build_collection_response(items, collection_path)

    def format_notification(self, notification: Notification) -> Dict[str, Any]:
        return self.builder._with_links(
            serialize(notification), self.affordances.build_notification_affordances(notification)
        )

    def format_notification_collection(
        self,
        notifications: List[Notification],
        unread: int
    ) -> Dict[str, Any]:
        items = [self.format_notification(n) for n in notifications]
        return self.builder.build_collection_response(
            items, "/api/notifications", extra={'unread': unread}
        )

    def format_feedback(self, feedback: Feedback, viewer: Identity) -> Dict[str, Any]:
        return self.builder._with_links(
            serialize(feedback), self.affordances.build_feedback_affordances(feedback, viewer)
        )

    def format_feedback_collection(
        self,
        items: List[Feedback],
        viewer: Identity,
        collection_path: str
    ) -> Dict[str, Any]:
        return self.builder.build_collection_response(
            [self.format_feedback(f, viewer) for f in items], collection_path
        )

    def format_validation_error(
        self,
        detail: str,
        instance: str,
        validation_errors: List[Dict[str, Any]]
    ) -> Dict[str, Any]:
        """Format a validation error response."""
        return self.builder.build_error_response(
            "validation-error",
            "Validation Error",
            400,
            detail,
            instance,
            validation_errors
        )

    def format_server_error(self, detail: str, instance: str) -> Dict[str, Any]:
        """Format a server error response."""
        return self.builder.build_error_response(
            "internal-server-error",
            "Internal Server Error",
            500,
            detail,
            instance
        )


# Convenience function for creating HAL formatter
def create_hal_formatter(base_url: str) -> HalFormatter:
    """Create a HAL formatter instance."""
    return HalFormatter(base_url)
