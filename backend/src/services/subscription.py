"""Stripe checkout sessions and webhook reconciliation.

Every handler writes the full relevant field set with a merge, so a
redelivered event leaves the record exactly as the first delivery did.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Optional

import stripe
from loguru import logger

from config import Configuration
from errors import ProviderError, SignatureInvalid
from models import CheckoutSession, EventResult
from services.quota_store import QuotaStore
from utils import epoch_to_iso, utc_now_iso

CHECKOUT_COMPLETED = "checkout.session.completed"
SUBSCRIPTION_CREATED = "customer.subscription.created"
SUBSCRIPTION_UPDATED = "customer.subscription.updated"
SUBSCRIPTION_DELETED = "customer.subscription.deleted"

# older sessions were created with "uid"
METADATA_USER_KEYS = ("userId", "uid")
CUSTOMER_ID_FIELD = "stripeCustomerId"


def _metadata_user(obj: Dict[str, Any]) -> Optional[str]:
    metadata = obj.get("metadata") or {}
    for key in METADATA_USER_KEYS:
        value = metadata.get(key)
        if value:
            return str(value)
    return None


def _period_end(subscription: Dict[str, Any]) -> Optional[str]:
    value = subscription.get("current_period_end")
    if value is None:
        # newer API versions report the period per subscription item
        items = ((subscription.get("items") or {}).get("data")) or []
        if items and isinstance(items[0], dict):
            value = items[0].get("current_period_end")
    return epoch_to_iso(value)


class SubscriptionManager:
    def __init__(self, cfg: Configuration, store: QuotaStore, stripe_client: Any = None) -> None:
        self.cfg = cfg
        self.store = store
        self.stripe = stripe_client or stripe

    def create_checkout_session(self, user_id: str) -> CheckoutSession:
        if not user_id:
            raise ValueError("User ID is required")
        self.cfg.require_stripe()

        base_url = self.cfg.app_base_url.rstrip("/")
        metadata = {"userId": user_id}
        try:
            session = self.stripe.checkout.Session.create(
                api_key=self.cfg.stripe_secret_key,
                payment_method_types=["card"],
                line_items=[{"price": self.cfg.stripe_price_id, "quantity": 1}],
                mode="subscription",
                success_url=f"{base_url}/?session_id={{CHECKOUT_SESSION_ID}}",
                cancel_url=f"{base_url}/",
                metadata=metadata,
                subscription_data={"metadata": metadata},
            )
        except stripe.StripeError as exc:
            logger.error("checkout session rejected user={}: {}", user_id, exc)
            raise ProviderError(f"Failed to create checkout session: {exc}") from exc

        session_id = getattr(session, "id", None)
        if not session_id:
            raise ProviderError("Could not create checkout session")
        logger.info("checkout session created user={} session={}", user_id, session_id)
        return CheckoutSession(session_id=session_id, user_id=user_id, url=getattr(session, "url", None))

    def verify_event(self, payload: bytes, signature: Optional[str]) -> Dict[str, Any]:
        """Check the Stripe-Signature header and return the decoded event."""
        if not signature:
            raise SignatureInvalid("No signature")
        self.cfg.require_webhook_secret()

        # construct_event enforces the default 300s timestamp tolerance
        try:
            self.stripe.Webhook.construct_event(payload, signature, self.cfg.stripe_webhook_secret)
        except stripe.SignatureVerificationError as exc:
            logger.warning("webhook verification failed: {}", exc)
            raise SignatureInvalid(f"Webhook Error: {exc}") from exc
        except ValueError as exc:
            # undecodable or non-JSON body
            logger.warning("webhook payload rejected: {}", exc)
            raise SignatureInvalid("Webhook Error: invalid payload") from exc

        try:
            body = payload.decode("utf-8") if isinstance(payload, (bytes, bytearray)) else payload
            event = json.loads(body)
        except ValueError as exc:
            raise SignatureInvalid("Webhook Error: invalid payload") from exc
        if not isinstance(event, dict) or "type" not in event:
            raise SignatureInvalid("Webhook Error: invalid payload")
        return event

    def handle_event(self, event: Dict[str, Any]) -> EventResult:
        event_type = str(event.get("type") or "")
        obj = ((event.get("data") or {}).get("object")) or {}
        logger.info("webhook event type={} id={}", event_type, event.get("id"))

        if event_type == CHECKOUT_COMPLETED:
            return self._checkout_completed(event_type, obj)
        if event_type in (SUBSCRIPTION_CREATED, SUBSCRIPTION_UPDATED):
            return self._subscription_changed(event_type, obj)
        if event_type == SUBSCRIPTION_DELETED:
            return self._subscription_deleted(event_type, obj)

        logger.info("Unhandled event type: {}", event_type)
        return EventResult(event_type=event_type, handled=False, note="unhandled")

    def _checkout_completed(self, event_type: str, session: Dict[str, Any]) -> EventResult:
        user_id = _metadata_user(session)
        if not user_id:
            logger.error("No userId in checkout session metadata session={}", session.get("id"))
            return EventResult(event_type=event_type, handled=False, note="missing metadata")

        fields: Dict[str, Any] = {"isPremium": True, "updatedAt": utc_now_iso()}
        if session.get("customer"):
            fields[CUSTOMER_ID_FIELD] = session["customer"]
        if session.get("subscription"):
            fields["stripeSubscriptionId"] = session["subscription"]
        self.store.merge(user_id, fields)
        logger.info("User {} upgraded to premium", user_id)
        return EventResult(event_type=event_type, handled=True, user_id=user_id)

    def _resolve_user(self, subscription: Dict[str, Any]) -> Optional[str]:
        user_id = _metadata_user(subscription)
        if user_id:
            return user_id
        customer_id = subscription.get("customer")
        if not customer_id:
            return None
        matches = self.store.find_by_field(CUSTOMER_ID_FIELD, customer_id, limit=2)
        if len(matches) != 1:
            logger.error("customer {} resolved to {} users; dropping event", customer_id, len(matches))
            return None
        return matches[0]

    def _subscription_changed(self, event_type: str, subscription: Dict[str, Any]) -> EventResult:
        user_id = self._resolve_user(subscription)
        if not user_id:
            return EventResult(event_type=event_type, handled=False, note="no target user")

        status = subscription.get("status")
        self.store.merge(
            user_id,
            {
                "isPremium": status == "active",
                "stripeSubscriptionId": subscription.get("id"),
                "stripeCurrentPeriodEnd": _period_end(subscription),
                "subscriptionStatus": status,
                "updatedAt": utc_now_iso(),
            },
        )
        logger.info("Subscription {} for user {} status={}", subscription.get("id"), user_id, status)
        return EventResult(event_type=event_type, handled=True, user_id=user_id)

    def _subscription_deleted(self, event_type: str, subscription: Dict[str, Any]) -> EventResult:
        user_id = self._resolve_user(subscription)
        if not user_id:
            return EventResult(event_type=event_type, handled=False, note="no target user")

        self.store.merge(
            user_id,
            {"isPremium": False, "subscriptionStatus": "cancelled", "updatedAt": utc_now_iso()},
        )
        logger.info("Subscription cancelled for user {}", user_id)
        return EventResult(event_type=event_type, handled=True, user_id=user_id)

