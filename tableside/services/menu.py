import logging
import re
from typing import Iterable

from tableside.models.models import ProductCategoryEnum
from tableside.schemas.menu import MenuCategory, MenuPublic, ProductCreate, ProductPublic


logger = logging.getLogger("tableside.menu")

POPULAR_THRESHOLD = 150

CATEGORIES: list[tuple[str, str]] = [
    (ProductCategoryEnum.MAIN_COURSE.value, "Main Course"),
    (ProductCategoryEnum.APPETIZERS.value, "Appetizers"),
    (ProductCategoryEnum.DRINKS.value, "Drinks"),
    (ProductCategoryEnum.DESSERTS.value, "Desserts"),
]

SORT_OPTIONS = ("relevancy", "name", "price", "spice", "chef-special", "most-ordered", "reviews")

_SORT_KEYS = {
    "name": lambda p: p.name.casefold(),
    "price": lambda p: p.price,
    "spice": lambda p: p.spice_level,
    "chef-special": lambda p: p.chef_special,
    "most-ordered": lambda p: p.order_count,
    "reviews": lambda p: p.review_count,
}


def product_slug(name: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-")


def is_popular(product: ProductPublic) -> bool:
    return product.order_count > POPULAR_THRESHOLD and product.is_available


def popular_products(products: Iterable[ProductPublic]) -> list[ProductPublic]:
    return sorted((p for p in products if is_popular(p)), key=lambda p: p.order_count, reverse=True)


def group_by_category(products: Iterable[ProductPublic]) -> dict[str, list[ProductPublic]]:
    """Products per category, most ordered first; unknown categories are kept after the known ones."""
    grouped: dict[str, list[ProductPublic]] = {category: [] for category, _ in CATEGORIES}
    for product in products:
        category = product.category.value if product.category else ProductCategoryEnum.MAIN_COURSE.value
        grouped.setdefault(category, []).append(product)
    for items in grouped.values():
        items.sort(key=lambda p: p.order_count, reverse=True)
    return grouped


def search(products: Iterable[ProductPublic], query: str | None) -> list[ProductPublic]:
    needle = (query or "").strip().lower()
    if not needle:
        return list(products)
    return [p for p in products if needle in p.name.lower()]


def sort_products(products: Iterable[ProductPublic], sort_by: str = "relevancy", order: str = "desc") -> list[ProductPublic]:
    items = list(products)
    key = _SORT_KEYS.get(sort_by)
    if key is None:
        return items
    return sorted(items, key=key, reverse=order != "asc")


def item_label(product: ProductPublic) -> str | None:
    if product.chef_special:
        return "Chef Special"
    if product.is_popular or product.order_count > POPULAR_THRESHOLD:
        return "Popular"
    return None


def build_menu(
    products: Iterable[ProductPublic],
    query: str | None = None,
    sort_by: str = "relevancy",
    order: str = "desc",
) -> MenuPublic:
    products = list(products)
    titles = dict(CATEGORIES)
    categories: list[MenuCategory] = []
    for category, items in group_by_category(products).items():
        matched = sort_products(search(items, query), sort_by, order)
        if query and query.strip() and not matched:
            continue
        categories.append(MenuCategory(category=category, title=titles.get(category, category), products=matched))
    return MenuPublic(categories=categories, popular=popular_products(products))


def _product(
    category: ProductCategoryEnum,
    name: str,
    price: float,
    description: str,
    rating: float,
    spice_level: int,
    chef_special: bool,
    order_count: int,
    review_count: int,
    image: str,
) -> ProductCreate:
    return ProductCreate(
        id=product_slug(name),
        name=name,
        price=price,
        description=description,
        full_description=description,
        image=f"/images/{image}.jpg",
        rating=rating,
        spice_level=spice_level,
        chef_special=chef_special,
        order_count=order_count,
        review_count=review_count,
        category=category,
    )


_MAIN = ProductCategoryEnum.MAIN_COURSE
_APP = ProductCategoryEnum.APPETIZERS
_DRINK = ProductCategoryEnum.DRINKS
_DESSERT = ProductCategoryEnum.DESSERTS

DEFAULT_PRODUCTS: list[ProductCreate] = [
    _product(_MAIN, "Grilled Chicken Breast", 18.99, "Tender grilled chicken with herbs", 4.8, 2, True, 156, 89, "grilled-chicken"),
    _product(_MAIN, "Beef Steak", 24.99, "Premium beef steak with garlic butter", 4.9, 1, False, 203, 124, "beef-steak"),
    _product(_MAIN, "Salmon Fillet", 22.99, "Pan-seared salmon with lemon herb sauce", 4.6, 0, False, 98, 52, "salmon-fillet"),
    _product(_MAIN, "Lamb Chops", 28.99, "Herb-crusted lamb chops with mint sauce", 4.7, 2, True, 134, 76, "lamb-chops"),
    _product(_MAIN, "Budak Crispy Chicken", 5.85, "Crispy chicken in spicy budak sauce", 4.6, 3, False, 167, 92, "budak-chicken"),
    _product(_APP, "Bruschetta", 8.99, "Toasted bread with tomatoes and basil", 4.5, 0, False, 89, 45, "bruschetta"),
    _product(_APP, "Mozzarella Sticks", 7.99, "Crispy mozzarella with marinara", 4.4, 0, False, 134, 67, "mozzarella-sticks"),
    _product(_APP, "Chicken Wings", 11.99, "Crispy wings with choice of sauce", 4.6, 2, False, 145, 82, "chicken-wings"),
    _product(_APP, "Shaved Beef Ciabatta Sandwich", 5.40, "Toasted ciabatta with seared beef and cheddar", 4.6, 1, False, 156, 89, "beef-ciabatta"),
    _product(_DRINK, "Fresh Lemonade", 4.99, "Homemade lemonade with mint", 4.7, 0, False, 201, 112, "fresh-lemonade"),
    _product(_DRINK, "Berry Smoothie", 6.99, "Mixed berries with yogurt", 4.5, 0, False, 92, 48, "berry-smoothie"),
    _product(_DRINK, "Green Tea", 3.99, "Premium Japanese green tea", 4.3, 0, False, 78, 41, "green-tea"),
    _product(_DRINK, "Sparkling Water", 2.99, "Premium sparkling water with lemon", 4.2, 0, False, 67, 35, "sparkling-water"),
    _product(_DESSERT, "Chocolate Cake", 8.99, "Rich chocolate cake with ganache", 4.9, 0, True, 178, 98, "chocolate-cake"),
    _product(_DESSERT, "Tiramisu", 9.99, "Classic Italian dessert", 4.8, 0, False, 145, 78, "tiramisu"),
    _product(_DESSERT, "Tiramisu Pancake", 4.20, "Fluffy pancake with coffee toffee crunch", 4.7, 0, True, 189, 112, "tiramisu-pancake"),
]


async def seed_default_products(store) -> int:
    """Insert the default menu into an empty products table; returns how many were added."""
    existing = await store.count_products()
    if existing:
        logger.info("Found %s existing products, skipping menu seed", existing)
        return 0
    for product in DEFAULT_PRODUCTS:
        await store.create_one("products", product.model_dump(mode="json"))
    logger.info("Seeded %s default products", len(DEFAULT_PRODUCTS))
    return len(DEFAULT_PRODUCTS)
