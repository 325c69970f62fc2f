"""
Data models for mealcart.

These models define the core entities used throughout the system:
- Recipe / Ingredient: read-only recipes from the catalog
- MealSlot / MealPlan: weekly meal plans (immutable, copy-on-write)
- ShoppingListItem: consolidated shopping list lines
- OfflineShoppingListEntry: locally persisted shopping lists with sync metadata
- SyncOperation / SyncStatus: the pending-operation queue
- HistoryEntry: undo/redo snapshots
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, List, Optional


DAYS_OF_WEEK = ("monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday")
MEAL_TYPES = ("breakfast", "lunch", "dinner")

SYNC_SYNCED = "synced"
SYNC_PENDING = "pending"
SYNC_CONFLICT = "conflict"
SYNC_STATUSES = (SYNC_SYNCED, SYNC_PENDING, SYNC_CONFLICT)

OPERATION_TYPES = ("create", "update", "delete")


def parse_date(value) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    return date.fromisoformat(value[:10])


def parse_datetime(value) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.fromisoformat(value)


@dataclass(frozen=True)
class Ingredient:
    """A recipe ingredient as written by the recipe author."""
    name: str
    quantity: str = ""  # "2", "1/2", "1 1/2", "" for "to taste"
    unit: str = ""
    category: str = ""  # blank means "guess from the name"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
            "category": self.category,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Ingredient":
        quantity = data.get("quantity", "")
        return cls(
            name=data["name"],
            quantity=quantity if isinstance(quantity, str) else str(quantity),
            unit=data.get("unit") or "",
            category=data.get("category") or "",
        )


@dataclass(frozen=True)
class Recipe:
    """Recipe snapshot. Owned by the recipe catalog, never edited here."""
    id: str
    name: str
    servings: int
    ingredients: List[Ingredient] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "servings": self.servings,
            "ingredients": [ing.to_dict() for ing in self.ingredients],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Recipe":
        return cls(
            id=str(data["id"]),
            name=data.get("name") or data.get("title") or "Unknown Recipe",
            servings=int(data.get("servings") or 1),
            ingredients=[Ingredient.from_dict(i) for i in data.get("ingredients", [])],
        )


@dataclass(frozen=True)
class MealSlot:
    """
    A recipe scheduled into one (day, meal type) cell of a plan.

    servings holds the effective serving count. When manual_serving_override
    is set, servings is the user's choice and household-size changes leave it
    alone.
    """
    id: str
    recipe_id: str
    recipe: Recipe
    servings: int
    scheduled_for: date
    meal_type: str  # breakfast, lunch, dinner
    manual_serving_override: bool = False
    notes: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "recipe_id": self.recipe_id,
            "recipe": self.recipe.to_dict(),
            "servings": self.servings,
            "scheduled_for": self.scheduled_for.isoformat(),
            "meal_type": self.meal_type,
            "manual_serving_override": self.manual_serving_override,
            "notes": self.notes,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MealSlot":
        recipe = Recipe.from_dict(data["recipe"])
        return cls(
            id=data["id"],
            recipe_id=str(data.get("recipe_id") or recipe.id),
            recipe=recipe,
            servings=int(data["servings"]),
            scheduled_for=parse_date(data["scheduled_for"]),
            meal_type=data["meal_type"],
            manual_serving_override=bool(data.get("manual_serving_override", False)),
            notes=data.get("notes"),
        )


@dataclass(frozen=True)
class MealPlan:
    """
    One user's plan for one week.

    meals maps each of the seven day keys to a dict of meal type -> MealSlot.
    Instances are never mutated; see mealcart.meal_plan_ops for updates.
    """
    id: str
    user_id: str
    week_start_date: date  # Monday
    meals: Dict[str, Dict[str, MealSlot]] = field(default_factory=dict)
    created_at: datetime = field(default_factory=datetime.now)
    updated_at: datetime = field(default_factory=datetime.now)

    def get_slot(self, day: str, meal_type: str) -> Optional[MealSlot]:
        return self.meals.get(day, {}).get(meal_type)

    def iter_slots(self) -> List[MealSlot]:
        """All populated slots in day/meal-type order."""
        slots = []
        for day in DAYS_OF_WEEK:
            day_meals = self.meals.get(day, {})
            for meal_type in MEAL_TYPES:
                if meal_type in day_meals:
                    slots.append(day_meals[meal_type])
        return slots

    def is_empty(self) -> bool:
        return not self.iter_slots()

    def to_dict(self) -> Dict[str, Any]:
        """Serialize with dates as ISO strings."""
        return {
            "id": self.id,
            "user_id": self.user_id,
            "week_start_date": self.week_start_date.isoformat(),
            "meals": {
                day: {meal_type: slot.to_dict() for meal_type, slot in self.meals.get(day, {}).items()}
                for day in DAYS_OF_WEEK
            },
            "created_at": self.created_at.isoformat(),
            "updated_at": self.updated_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MealPlan":
        meals_data = data.get("meals", {})
        meals = {
            day: {
                meal_type: MealSlot.from_dict(slot)
                for meal_type, slot in (meals_data.get(day) or {}).items()
            }
            for day in DAYS_OF_WEEK
        }
        return cls(
            id=data["id"],
            user_id=str(data["user_id"]),
            week_start_date=parse_date(data["week_start_date"]),
            meals=meals,
            created_at=parse_datetime(data["created_at"]) if data.get("created_at") else datetime.now(),
            updated_at=parse_datetime(data["updated_at"]) if data.get("updated_at") else datetime.now(),
        )


@dataclass
class ShoppingListItem:
    """
    One consolidated line of a shopping list.

    quantity is the display form ("⅓", "1 ½", "4"); amount keeps the exact
    consolidated total in ``unit`` so repeated merges don't compound rounding.
    """
    name: str
    quantity: str
    unit: str
    category: str
    recipes: List[str] = field(default_factory=list)
    checked: bool = False
    amount: float = 0.0

    @property
    def display_text(self) -> str:
        return f"{self.quantity} {self.unit}".strip()

    def add_recipe(self, recipe_name: str) -> None:
        if recipe_name not in self.recipes:
            self.recipes.append(recipe_name)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
            "category": self.category,
            "recipes": list(self.recipes),
            "checked": self.checked,
            "amount": self.amount,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShoppingListItem":
        return cls(
            name=data["name"],
            quantity=str(data.get("quantity", "")),
            unit=data.get("unit", ""),
            category=data.get("category", "Other"),
            recipes=list(data.get("recipes", [])),
            checked=bool(data.get("checked", False)),
            amount=float(data.get("amount", 0.0)),
        )


@dataclass
class OfflineShoppingListItem:
    """Shopping list item with its own sync bookkeeping."""
    id: str
    name: str
    quantity: str
    unit: str
    category: str
    recipes: List[str] = field(default_factory=list)
    checked: bool = False
    last_modified: datetime = field(default_factory=datetime.now)
    sync_status: str = SYNC_PENDING

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "quantity": self.quantity,
            "unit": self.unit,
            "category": self.category,
            "recipes": list(self.recipes),
            "checked": self.checked,
            "last_modified": self.last_modified.isoformat(),
            "sync_status": self.sync_status,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflineShoppingListItem":
        return cls(
            id=data["id"],
            name=data["name"],
            quantity=str(data.get("quantity", "")),
            unit=data.get("unit", ""),
            category=data.get("category", "Other"),
            recipes=list(data.get("recipes", [])),
            checked=bool(data.get("checked", False)),
            last_modified=parse_datetime(data["last_modified"]) if data.get("last_modified") else datetime.now(),
            sync_status=data.get("sync_status", SYNC_PENDING),
        )


@dataclass
class ShoppingListMetadata:
    id: str
    meal_plan_id: Optional[str]
    week_start_date: str  # ISO date of the Monday
    generated_at: datetime = field(default_factory=datetime.now)
    last_modified: datetime = field(default_factory=datetime.now)
    sync_status: str = SYNC_PENDING
    device_id: str = ""
    version: int = 1

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "meal_plan_id": self.meal_plan_id,
            "week_start_date": self.week_start_date,
            "generated_at": self.generated_at.isoformat(),
            "last_modified": self.last_modified.isoformat(),
            "sync_status": self.sync_status,
            "device_id": self.device_id,
            "version": self.version,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ShoppingListMetadata":
        return cls(
            id=data["id"],
            meal_plan_id=data.get("meal_plan_id"),
            week_start_date=data.get("week_start_date", ""),
            generated_at=parse_datetime(data["generated_at"]) if data.get("generated_at") else datetime.now(),
            last_modified=parse_datetime(data["last_modified"]) if data.get("last_modified") else datetime.now(),
            sync_status=data.get("sync_status", SYNC_PENDING),
            device_id=data.get("device_id", ""),
            version=int(data.get("version", 1)),
        )


@dataclass
class OfflineShoppingListEntry:
    """A shopping list persisted on this device."""
    metadata: ShoppingListMetadata
    shopping_list: Dict[str, List[OfflineShoppingListItem]] = field(default_factory=dict)

    @property
    def id(self) -> str:
        return self.metadata.id

    def find_item(self, category: str, item_id: str) -> Optional[OfflineShoppingListItem]:
        for item in self.shopping_list.get(category, []):
            if item.id == item_id:
                return item
        return None

    def item_count(self) -> int:
        return sum(len(items) for items in self.shopping_list.values())

    def content_signature(self) -> List[Any]:
        """
        Content used for duplicate detection.

        Ignores ids, timestamps and sync state. Item fields are lowercased and
        trimmed, recipe names sorted, items sorted by name.
        """
        signature = []
        for category in sorted(self.shopping_list, key=lambda c: c.strip().lower()):
            items = []
            for item in self.shopping_list[category]:
                items.append((
                    item.name.strip().lower(),
                    str(item.quantity).strip().lower(),
                    item.unit.strip().lower(),
                    item.category.strip().lower(),
                    tuple(sorted(r.strip().lower() for r in item.recipes)),
                ))
            if items:
                signature.append((category.strip().lower(), sorted(items)))
        return signature

    def to_dict(self) -> Dict[str, Any]:
        return {
            "metadata": self.metadata.to_dict(),
            "shopping_list": {
                category: [item.to_dict() for item in items]
                for category, items in self.shopping_list.items()
            },
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "OfflineShoppingListEntry":
        return cls(
            metadata=ShoppingListMetadata.from_dict(data["metadata"]),
            shopping_list={
                category: [OfflineShoppingListItem.from_dict(i) for i in items]
                for category, items in data.get("shopping_list", {}).items()
            },
        )


@dataclass
class SyncOperation:
    """A local mutation waiting to be replayed against the server."""
    id: str
    type: str  # create, update, delete
    shopping_list_id: str
    payload: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=datetime.now)
    retry_count: int = 0
    max_retries: int = 3
    status: str = SYNC_PENDING  # pending or conflict
    last_error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "shopping_list_id": self.shopping_list_id,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "status": self.status,
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SyncOperation":
        return cls(
            id=data["id"],
            type=data["type"],
            shopping_list_id=data["shopping_list_id"],
            payload=data.get("payload") or {},
            timestamp=parse_datetime(data["timestamp"]) if data.get("timestamp") else datetime.now(),
            retry_count=int(data.get("retry_count", 0)),
            max_retries=int(data.get("max_retries", 3)),
            status=data.get("status", SYNC_PENDING),
            last_error=data.get("last_error"),
        )


@dataclass
class SyncStatus:
    is_active: bool = False
    pending_operations: int = 0
    last_sync: Optional[datetime] = None
    errors: List[str] = field(default_factory=list)
    conflicts: int = 0
    failed_operations: int = 0


@dataclass
class StorageUsage:
    used: int  # bytes
    available: int  # bytes
    percentage: float  # 0-100


@dataclass
class HistoryEntry:
    """Undo/redo snapshot. state is MealPlan.to_dict() output."""
    id: str
    state: Dict[str, Any]
    timestamp: datetime
    action: str
