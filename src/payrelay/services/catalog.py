"""Category (product) lookup."""

from typing import TYPE_CHECKING, Any

from payrelay.models import Category

if TYPE_CHECKING:
    from .dynamodb import DynamoDBService


class CatalogService:
    """Read-only access to purchasable categories."""

    CATEGORIES_TABLE = "categories"

    def __init__(self, db: "DynamoDBService") -> None:
        self.db = db

    def get_category(self, category_id: str) -> Category | None:
        """Get a category by ID.

        Args:
            category_id: Category ID

        Returns:
            Category or None if not found
        """
        item = self.db.get_item(self.CATEGORIES_TABLE, {"category_id": category_id})
        return self._item_to_category(item) if item else None

    def _item_to_category(self, item: dict[str, Any]) -> Category:
        return Category(
            category_id=str(item["category_id"]),
            name=item.get("name", ""),
            price_amount=int(item.get("price_amount", 0)),
            quiz_type=item.get("quiz_type", "paid"),
            description=item.get("description"),
        )
