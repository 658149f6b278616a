"""Core service receiving media store webhook notifications.

The signature is `sha256(raw_payload + secret)` in hex, sent in the
`x-cld-signature` or `x-cloudinary-signature` header. Without a configured
secret, notifications are accepted after a warning; that mode is meant for
local development only.
"""

import hashlib
import hmac
import json
import logging
from typing import Any, Dict, Mapping, Optional

from photostream.domain.errors import UnauthorizedError, ValidationError
from photostream.domain.events.api_events import WebhookReceived, dispatch_event
from photostream.domain.interfaces.cache import CacheService
from photostream.domain.interfaces.session_store import SessionStore

logger = logging.getLogger(__name__)

SIGNATURE_HEADERS = ("x-cld-signature", "x-cloudinary-signature")
REQUIRED_FIELDS = ("notification_type", "timestamp")


def compute_signature(payload: bytes, secret: str) -> str:
    return hashlib.sha256(payload + secret.encode("utf-8")).hexdigest()


class WebhookService:
    """Verifies and dispatches webhook notifications."""

    def __init__(
        self,
        secret: Optional[str],
        cache_service: Optional[CacheService] = None,
        session_store: Optional[SessionStore] = None,
    ):
        self.secret = secret
        self.cache_service = cache_service
        self.session_store = session_store
        if not secret:
            logger.warning("Webhook secret not configured - signatures will not be verified")
        logger.info("WebhookService initialized.")

    def verify_signature(self, payload: bytes, signature: Optional[str]) -> bool:
        """Checks the signature in constant time. Always True without a secret."""
        if not self.secret:
            logger.warning("Webhook secret not configured - skipping signature verification")
            return True
        if not signature:
            return False
        expected = compute_signature(payload, self.secret)
        return hmac.compare_digest(signature.strip().lower(), expected)

    @staticmethod
    def signature_from(headers: Mapping[str, str]) -> Optional[str]:
        lowered = {k.lower(): v for k, v in headers.items()}
        for name in SIGNATURE_HEADERS:
            if lowered.get(name):
                return lowered[name]
        return None

    async def handle(self, payload: bytes, headers: Mapping[str, str]) -> Dict[str, Any]:
        """Verifies, parses and dispatches one notification.

        Raises:
            UnauthorizedError: Signature missing or wrong.
            ValidationError: Body is not JSON or lacks required fields.
        """
        if not self.verify_signature(payload, self.signature_from(headers)):
            logger.warning("Rejected webhook with invalid signature")
            raise UnauthorizedError("Invalid webhook signature")

        try:
            event = json.loads(payload)
        except (ValueError, UnicodeDecodeError) as e:
            raise ValidationError(f"Invalid JSON payload: {e}") from e
        if not isinstance(event, dict):
            raise ValidationError("Webhook payload must be a JSON object")
        missing = [f for f in REQUIRED_FIELDS if not event.get(f)]
        if missing:
            raise ValidationError(f"Missing required fields: {', '.join(missing)}")

        notification_type = str(event["notification_type"])
        dispatch_event(WebhookReceived(notification_type=notification_type, public_id=event.get("public_id")))
        handler = {
            "upload": self._on_upload,
            "delete": self._on_delete,
            "eager": self._on_eager,
            "moderation": self._on_moderation,
        }.get(notification_type)
        if handler is None:
            logger.info(f"Unhandled webhook event type: {notification_type}")
        else:
            await handler(event)

        return {
            "success": True,
            "message": "Webhook processed successfully",
            "event_type": notification_type,
            "public_id": event.get("public_id"),
        }

    # --- Event handlers ---

    async def _on_upload(self, event: Dict[str, Any]) -> None:
        tags = event.get("tags") or []
        user = next((t[len("user:"):] for t in tags if t.startswith("user:")), None)
        game = next((t[len("game:"):] for t in tags if t.startswith("game:")), None)
        logger.info(f"Upload completed: public_id={event.get('public_id')} bytes={event.get('bytes')} format={event.get('format')}")
        if user and game:
            logger.info(f"Upload completed for user {user}, game {game}")

    async def _on_delete(self, event: Dict[str, Any]) -> None:
        public_id = event.get("public_id")
        logger.info(f"Asset deleted: public_id={public_id} asset_id={event.get('asset_id')}")
        if not public_id:
            return
        if self.cache_service is not None:
            await self.cache_service.invalidate(public_id)
        if self.session_store is not None:
            self.session_store.remove(public_id)

    async def _on_eager(self, event: Dict[str, Any]) -> None:
        eager = event.get("eager") or []
        logger.info(f"Eager transformations completed: public_id={event.get('public_id')} count={len(eager)}")
        for index, item in enumerate(eager, start=1):
            logger.info(f"Transformation {index}: {item.get('transformation')} status={item.get('status')} url={item.get('secure_url')}")

    async def _on_moderation(self, event: Dict[str, Any]) -> None:
        moderation = event.get("moderation") or {}
        status = moderation.get("status")
        logger.info(f"Moderation completed: public_id={event.get('public_id')} status={status}")
        if status == "rejected":
            logger.warning(f"Content moderation rejected: public_id={event.get('public_id')} response={moderation.get('response')}")
