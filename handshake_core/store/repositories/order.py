"""
Orders and the applications masters submit for them.

The canonical order lives at ``ORDER#<id>`` / ``METADATA``; a mirror row under
the client's partition (``USER#<clientId>`` / ``ORDER#<createdAt>#<id>``)
serves "my orders" listings. The mirror is a saga step: if it fails after
the canonical write, the repair tool re-derives it.
"""

from typing import Any

from ...logging_config import get_logger
from ..constants import (
    INDEX_GSI1,
    INDEX_GSI2,
    PREFIX_APPLICATION,
    PREFIX_CATEGORY,
    PREFIX_MASTER,
    PREFIX_ORDER,
    PREFIX_ORDER_STATUS,
    PREFIX_USER,
    SK_METADATA,
)
from ..core.indexing import EntitySchema, IndexProjection, build_item, compose, constant
from ..exceptions import ItemExistsError
from ..keys import application_key, order_key, order_pk, user_pk
from ..models import (
    ApplicationPatch,
    ApplicationStatus,
    OrderPatch,
    OrderStatus,
    Page,
    SortCondition,
)
from ..utils import format_key
from .base import BaseRepository, strip_keys

logger = get_logger(__name__)

ORDER_SCHEMA = EntitySchema(
    name="order",
    key=IndexProjection(None, compose(PREFIX_ORDER, "id"), constant(SK_METADATA)),
    indexes=(
        IndexProjection(
            INDEX_GSI1, compose(PREFIX_ORDER_STATUS, "status"), compose(None, "createdAt", "id")
        ),
        IndexProjection(
            INDEX_GSI2, compose(PREFIX_CATEGORY, "categoryId"), compose(None, "createdAt", "id")
        ),
    ),
    immutable=frozenset({"clientId"}),
    key_prefixes=(f"{PREFIX_ORDER}#", SK_METADATA),
)

ORDER_MIRROR_SCHEMA = EntitySchema(
    name="order-mirror",
    key=IndexProjection(
        None, compose(PREFIX_USER, "clientId"), compose(PREFIX_ORDER, "createdAt", "id")
    ),
    key_prefixes=(f"{PREFIX_USER}#", f"{PREFIX_ORDER}#"),
)

APPLICATION_SCHEMA = EntitySchema(
    name="application",
    key=IndexProjection(None, compose(PREFIX_ORDER, "orderId"), compose(PREFIX_APPLICATION, "id")),
    indexes=(
        IndexProjection(
            INDEX_GSI1,
            compose(PREFIX_MASTER, "masterId"),
            compose(PREFIX_APPLICATION, "createdAt", "id"),
        ),
    ),
    immutable=frozenset({"orderId", "masterId"}),
    key_prefixes=(f"{PREFIX_ORDER}#", f"{PREFIX_APPLICATION}#"),
)


def order_mirror_item(order: dict[str, Any]) -> dict[str, Any]:
    """Client-list mirror row derived from the canonical order."""
    return build_item(ORDER_MIRROR_SCHEMA, strip_keys(order))


class OrderRepository(BaseRepository):
    def create(
        self,
        client_id: str,
        title: str,
        description: str,
        category_id: str,
        budget: float | None = None,
        currency: str = "KGS",
        location: str | None = None,
        deadline: str | None = None,
        status: OrderStatus = OrderStatus.ACTIVE,
    ) -> dict[str, Any]:
        """Create an order and its client-list mirror."""
        order = self._create(
            ORDER_SCHEMA,
            {
                "id": self.id_factory(),
                "clientId": client_id,
                "title": title,
                "description": description,
                "categoryId": category_id,
                "budget": budget,
                "currency": currency,
                "location": location,
                "deadline": deadline,
                "status": OrderStatus(status).value,
                "applicationsCount": 0,
            },
        )
        self._sync_mirror(order)
        logger.info(f"Created order {order['id']} for client {client_id}")
        return order

    def find_by_id(self, order_id: str) -> dict[str, Any] | None:
        return self._get(order_key(order_id))

    def find_by_status(
        self, status: OrderStatus | str, limit: int | None = None, start_token: str | None = None
    ) -> Page:
        """Orders in a status, newest first."""
        return self._query(
            format_key(PREFIX_ORDER_STATUS, OrderStatus(status).value),
            index_name=INDEX_GSI1,
            limit=limit,
            scan_forward=False,
            start_token=start_token,
        )

    def find_by_category(
        self, category_id: str, limit: int | None = None, start_token: str | None = None
    ) -> Page:
        """Orders in a category, newest first."""
        return self._query(
            format_key(PREFIX_CATEGORY, category_id),
            index_name=INDEX_GSI2,
            limit=limit,
            scan_forward=False,
            start_token=start_token,
        )

    def find_by_client(
        self, client_id: str, limit: int | None = None, start_token: str | None = None
    ) -> Page:
        """A client's orders (mirror rows), newest first."""
        return self._query(
            user_pk(client_id),
            sort=SortCondition.begins_with(f"{PREFIX_ORDER}#"),
            limit=limit,
            scan_forward=False,
            start_token=start_token,
        )

    def update(self, order_id: str, patch: OrderPatch) -> dict[str, Any]:
        """
        Update an order and re-sync its client mirror.

        Raises:
            ItemNotFoundError: If the order does not exist
        """
        order = self._update(ORDER_SCHEMA, order_key(order_id), patch)
        self._sync_mirror(order)
        return order

    def create_application(
        self,
        order_id: str,
        master_id: str,
        cover_letter: str | None = None,
        proposed_price: float | None = None,
        proposed_deadline: str | None = None,
    ) -> dict[str, Any]:
        """
        Submit a master's application for an order.

        Raises:
            ItemNotFoundError: If the order does not exist
            ItemExistsError: If the master already applied to this order
        """
        self._require(ORDER_SCHEMA, order_key(order_id))
        existing = self._query(
            format_key(PREFIX_MASTER, master_id),
            index_name=INDEX_GSI1,
            filters={"orderId": order_id},
            limit=1,
        )
        if existing.items:
            raise ItemExistsError(f"Master {master_id} already applied to order {order_id}")

        application = self._create(
            APPLICATION_SCHEMA,
            {
                "id": self.id_factory(),
                "orderId": order_id,
                "masterId": master_id,
                "coverLetter": cover_letter,
                "proposedPrice": proposed_price,
                "proposedDeadline": proposed_deadline,
                "status": ApplicationStatus.PENDING.value,
            },
        )
        self._saga_step(
            f"order {order_id} application count",
            lambda: self._refresh_applications_count(order_id),
        )
        logger.info(f"Master {master_id} applied to order {order_id}")
        return application

    def find_application(self, order_id: str, application_id: str) -> dict[str, Any] | None:
        return self._get(application_key(order_id, application_id))

    def find_applications(self, order_id: str) -> list[dict[str, Any]]:
        return self._query_all(
            order_pk(order_id), sort=SortCondition.begins_with(f"{PREFIX_APPLICATION}#")
        )

    def find_master_applications(
        self, master_id: str, limit: int | None = None, start_token: str | None = None
    ) -> Page:
        """A master's applications, newest first."""
        return self._query(
            format_key(PREFIX_MASTER, master_id),
            index_name=INDEX_GSI1,
            limit=limit,
            scan_forward=False,
            start_token=start_token,
        )

    def update_application(
        self, order_id: str, application_id: str, patch: ApplicationPatch
    ) -> dict[str, Any]:
        return self._update(APPLICATION_SCHEMA, application_key(order_id, application_id), patch)

    def rebuild_mirror(self, order: dict[str, Any]) -> dict[str, Any]:
        """Rewrite the client mirror from the canonical order."""
        mirror = order_mirror_item(order)
        self.client.put_item(mirror)
        return mirror

    def _refresh_applications_count(self, order_id: str) -> None:
        count = len(self.find_applications(order_id))
        order = self._update(ORDER_SCHEMA, order_key(order_id), {"applicationsCount": count})
        self.rebuild_mirror(order)

    def _sync_mirror(self, order: dict[str, Any]) -> None:
        self._saga_step(
            f"order {order['id']} client mirror", lambda: self.rebuild_mirror(order)
        )
