"""
Saved payment cards.

Cards are soft-deleted (``isActive = false``) so past transactions can still
refer to them. Only a provider token is stored, never card numbers.
"""

from typing import Any

from ...logging_config import get_logger
from ..constants import INDEX_GSI1, PREFIX_CARD, PREFIX_USER
from ..core.indexing import EntitySchema, IndexProjection, compose
from ..exceptions import InvalidEntityError
from ..keys import card_key, user_pk
from ..models import CardPatch, SortCondition
from ..utils import format_key
from .base import BaseRepository

logger = get_logger(__name__)

CARD_SCHEMA = EntitySchema(
    name="card",
    key=IndexProjection(None, compose(PREFIX_USER, "userId"), compose(PREFIX_CARD, "id")),
    indexes=(
        IndexProjection(
            INDEX_GSI1, compose(PREFIX_CARD, "providerCardId"), compose(PREFIX_USER, "userId")
        ),
    ),
    immutable=frozenset({"userId", "providerCardId", "last4", "brand"}),
    key_prefixes=(f"{PREFIX_USER}#", f"{PREFIX_CARD}#"),
)


class PaymentRepository(BaseRepository):
    def create_card(
        self,
        user_id: str,
        provider_card_id: str,
        last4: str,
        brand: str,
        expiry_month: int,
        expiry_year: int,
        cardholder_name: str | None = None,
        is_default: bool = False,
    ) -> dict[str, Any]:
        """Save a card. The user's first card becomes the default."""
        if not self.find_user_cards(user_id):
            is_default = True
        card = self._create(
            CARD_SCHEMA,
            {
                "id": self.id_factory(),
                "userId": user_id,
                "providerCardId": provider_card_id,
                "last4": last4,
                "brand": brand,
                "expiryMonth": expiry_month,
                "expiryYear": expiry_year,
                "cardholderName": cardholder_name,
                "isDefault": is_default,
                "isActive": True,
            },
        )
        if is_default:
            self._clear_other_defaults(user_id, card["id"])
        logger.info(f"Saved card {card['id']} for user {user_id}")
        return card

    def find_card(self, user_id: str, card_id: str) -> dict[str, Any] | None:
        return self._get(card_key(user_id, card_id))

    def find_card_by_provider_id(self, provider_card_id: str) -> dict[str, Any] | None:
        return self._first(format_key(PREFIX_CARD, provider_card_id), INDEX_GSI1)

    def find_user_cards(self, user_id: str) -> list[dict[str, Any]]:
        """Active cards, default first, then oldest first."""
        cards = self._query_all(
            user_pk(user_id),
            sort=SortCondition.begins_with(f"{PREFIX_CARD}#"),
            filters={"isActive": True},
        )
        return sorted(cards, key=lambda card: (not card.get("isDefault"), card["createdAt"]))

    def update_card(self, user_id: str, card_id: str, patch: CardPatch) -> dict[str, Any]:
        return self._update(CARD_SCHEMA, card_key(user_id, card_id), patch)

    def set_default_card(self, user_id: str, card_id: str) -> dict[str, Any]:
        """
        Make a card the default: set it first, then clear the others.

        Raises:
            ItemNotFoundError: If the card does not exist
            InvalidEntityError: If the card was deleted
        """
        card = self._require(CARD_SCHEMA, card_key(user_id, card_id))
        if not card.get("isActive"):
            raise InvalidEntityError(f"Card {card_id} is deleted")
        card = self._update(
            CARD_SCHEMA, card_key(user_id, card_id), CardPatch(is_default=True), current=card
        )
        self._clear_other_defaults(user_id, card_id)
        return card

    def delete_card(self, user_id: str, card_id: str) -> dict[str, Any]:
        """Soft-delete a card."""
        return self._update(
            CARD_SCHEMA, card_key(user_id, card_id), CardPatch(is_active=False, is_default=False)
        )

    def _clear_other_defaults(self, user_id: str, card_id: str) -> None:
        for other in self.find_user_cards(user_id):
            if other["id"] != card_id and other.get("isDefault"):
                self._saga_step(
                    f"clear default flag on card {other['id']}",
                    lambda other=other: self._update(
                        CARD_SCHEMA,
                        card_key(user_id, other["id"]),
                        CardPatch(is_default=False),
                        current=other,
                    ),
                )
