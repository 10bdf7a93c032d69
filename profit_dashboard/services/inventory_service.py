"""
库存估值：售价 × 各启用门店可售库存。
"""
from decimal import Decimal

from loguru import logger

from profit_dashboard.services.profit_service import to_money
from profit_dashboard.services.shopify_service import ShopifyClient

PRODUCT_FIELDS = "id,title,variants,image"


async def inventory_value(client: ShopifyClient, currency: str) -> dict:
    """
    拉取全部商品与启用门店的库存，按规格算库存价值，按价值倒序。
    只统计可售库存 > 0 的规格。
    """
    locations = [loc for loc in await client.list_locations() if loc.active]
    products = await client.list_all_products(fields=PRODUCT_FIELDS)
    logger.info(f"库存估值: {len(products)} 个商品, {len(locations)} 个启用门店")

    variant_by_item = {}
    for product in products:
        for variant in product.variants:
            if variant.inventory_item_id:
                variant_by_item[variant.inventory_item_id] = (product, variant)

    stock: dict[int, dict[int, int]] = {}
    if variant_by_item and locations:
        levels = await client.list_inventory_levels(
            list(variant_by_item), [loc.id for loc in locations]
        )
        for level in levels:
            if level.available and level.available > 0:
                stock.setdefault(level.inventory_item_id, {})[level.location_id] = level.available

    location_names = {loc.id: loc.name for loc in locations}
    rows = []
    total_value = Decimal("0")
    total_units = 0
    for item_id, per_location in stock.items():
        product, variant = variant_by_item[item_id]
        units = sum(per_location.values())
        value = variant.price * units
        total_value += value
        total_units += units
        rows.append({
            "product_id": product.id,
            "product_title": product.title,
            "product_image": product.image_url,
            "variant_id": variant.id,
            "variant_title": variant.title,
            "sku": variant.sku or "",
            "price": to_money(variant.price),
            "stock": units,
            "value": value,
            "location_breakdown": [
                {
                    "location_id": loc_id,
                    "location_name": location_names.get(loc_id, "Unknown"),
                    "quantity": qty,
                }
                for loc_id, qty in per_location.items()
            ],
        })

    rows.sort(key=lambda r: r["value"], reverse=True)
    for row in rows:
        row["value"] = to_money(row["value"])

    return {
        "currency": currency,
        "total_value": to_money(total_value),
        "total_units": total_units,
        "total_products": len(rows),
        "products": rows,
        "locations": [{"id": loc.id, "name": loc.name} for loc in locations],
    }
