from datetime import timedelta
from decimal import Decimal

import pytest

from storefront.database import utcnow
from storefront.exceptions import (
    CartItemNotFound,
    InsufficientStock,
    InvalidIdentity,
    InvalidQuantity,
    ProductNotFound,
    Unauthorized,
)
from storefront.services.auth import Identity
from storefront.services.cart_service import CartService, compute_totals

GUEST = Identity.guest("guest_session_1")
USER = Identity.user("user-1")


@pytest.fixture
def service(carts, products, events):
    return CartService(carts, products, events=events, guest_cart_ttl_days=7)


@pytest.fixture
def laptop(products):
    return products.add("Premium Laptop Pro", "10.00", stock=10, product_id="P1")


@pytest.fixture
def mouse(products):
    return products.add("Wireless Mouse", "2.50", stock=100, product_id="P2")


def test_resolve_cart_creates_once_per_owner(service):
    first = service.resolve_cart(GUEST)
    second = service.resolve_cart(GUEST)
    assert first.id == second.id
    assert first.session_id == "guest_session_1"
    assert first.user_id is None


def test_user_identity_takes_precedence_over_session(service):
    both = Identity(user_id="user-1", session_id="guest_session_1")
    cart = service.resolve_cart(both)
    assert cart.user_id == "user-1"
    assert cart.session_id is None


def test_resolve_without_identity_fails(service):
    with pytest.raises(InvalidIdentity):
        service.resolve_cart(Identity())


@pytest.mark.asyncio
async def test_add_update_remove_example_flow(service, laptop):
    result = await service.add_item(GUEST, "P1", 2)
    assert result.cart.total_items == 2
    assert result.cart.total_price == 20.0

    item_id = result.cart_item.id
    result = await service.update_item(GUEST, item_id, 1)
    assert result.cart.total_items == 1
    assert result.cart.total_price == 10.0

    result = await service.remove_item(GUEST, item_id)
    assert result.cart.total_items == 0
    assert result.cart.total_price == 0
    assert result.cart.items == []
    # корзина остаётся
    assert service.get_cart(GUEST).id == result.cart.id


@pytest.mark.asyncio
async def test_repeated_adds_sum_quantity_without_duplicates(service, laptop):
    for quantity in (1, 3, 2):
        await service.add_item(GUEST, "P1", quantity)

    summary = service.get_cart(GUEST)
    assert len(summary.items) == 1
    assert summary.items[0].quantity == 6


@pytest.mark.asyncio
async def test_price_snapshot_is_kept_when_catalog_price_changes(service, laptop):
    await service.add_item(GUEST, "P1", 1)
    laptop.price = Decimal("99.00")
    result = await service.add_item(GUEST, "P1", 1)

    assert result.message == "Cart item updated"
    assert result.cart_item.price_at_time == 10.0
    assert result.cart.total_price == 20.0


@pytest.mark.asyncio
async def test_add_more_than_stock_leaves_cart_unchanged(service, products):
    products.add("Limited", "10.00", stock=3, product_id="P3")

    with pytest.raises(InsufficientStock):
        await service.add_item(GUEST, "P3", 5)

    assert service.get_cart(GUEST).total_items == 0


@pytest.mark.asyncio
async def test_add_unknown_or_inactive_product(service, products):
    products.add("Retired", "5.00", stock=5, active=False, product_id="OLD")

    with pytest.raises(ProductNotFound):
        await service.add_item(GUEST, "missing", 1)
    with pytest.raises(ProductNotFound):
        await service.add_item(GUEST, "OLD", 1)


@pytest.mark.asyncio
@pytest.mark.parametrize("quantity", [0, -1])
async def test_add_rejects_non_positive_quantity(service, laptop, quantity):
    with pytest.raises(InvalidQuantity):
        await service.add_item(GUEST, "P1", quantity)


@pytest.mark.asyncio
async def test_update_checks_quantity_ownership_and_stock(service, laptop):
    result = await service.add_item(GUEST, "P1", 1)
    item_id = result.cart_item.id

    with pytest.raises(InvalidQuantity):
        await service.update_item(GUEST, item_id, 0)
    with pytest.raises(CartItemNotFound):
        await service.update_item(GUEST, "nope", 1)
    with pytest.raises(Unauthorized):
        await service.update_item(Identity.guest("someone_else"), item_id, 2)
    with pytest.raises(InsufficientStock):
        await service.update_item(GUEST, item_id, 11)


@pytest.mark.asyncio
async def test_remove_requires_ownership(service, laptop):
    result = await service.add_item(GUEST, "P1", 1)

    with pytest.raises(Unauthorized):
        await service.remove_item(USER, result.cart_item.id)
    assert service.get_cart(GUEST).total_items == 1


def test_totals_are_recomputed_identically(service, carts, laptop, mouse):
    cart = service.resolve_cart(USER)
    carts.add_or_increment(cart, laptop, 3)
    carts.add_or_increment(cart, mouse, 4)

    first = compute_totals(cart.items)
    second = compute_totals(cart.items)
    assert first == second == (7, Decimal("40.00"))


@pytest.mark.asyncio
async def test_clear_keeps_cart(service, laptop, mouse):
    await service.add_item(USER, "P1", 1)
    await service.add_item(USER, "P2", 2)

    result = await service.clear_cart(USER)
    assert result.cart.total_items == 0
    assert result.cart.id == service.get_cart(USER).id


@pytest.mark.asyncio
async def test_merge_adds_quantities_and_keeps_user_price(service, carts, laptop):
    await service.add_item(USER, "P1", 3)
    laptop.price = Decimal("12.00")
    await service.add_item(GUEST, "P1", 2)

    result = await service.merge_guest_cart("user-1", "guest_session_1")

    assert result.merged
    assert result.items_merged == 1
    assert [(i.product.id, i.quantity, i.price_at_time) for i in result.cart.items] == [("P1", 5, 10.0)]
    assert carts.get_by_owner(GUEST) is None


@pytest.mark.asyncio
async def test_merge_into_empty_user_cart_carries_guest_snapshot(service, carts, laptop, mouse):
    await service.add_item(GUEST, "P1", 2)
    await service.add_item(GUEST, "P2", 1)
    laptop.price = Decimal("15.00")

    result = await service.merge_guest_cart("user-1", "guest_session_1")

    quantities = {i.product.id: (i.quantity, i.price_at_time) for i in result.cart.items}
    assert quantities == {"P1": (2, 10.0), "P2": (1, 2.5)}
    assert result.cart.user_id == "user-1"
    assert carts.get_by_owner(GUEST) is None


@pytest.mark.asyncio
async def test_merge_noops(service, carts):
    result = await service.merge_guest_cart("user-1", None)
    assert not result.merged
    assert result.message == "No guest cart to merge"

    service.resolve_cart(GUEST)
    result = await service.merge_guest_cart("user-1", "guest_session_1")
    assert not result.merged
    assert result.message == "Guest cart is empty"


@pytest.mark.asyncio
async def test_merge_requires_user(service):
    with pytest.raises(InvalidIdentity):
        await service.merge_guest_cart(None, "guest_session_1")


@pytest.mark.asyncio
async def test_mutations_publish_cart_events(service, events, laptop):
    result = await service.add_item(GUEST, "P1", 2)
    await service.remove_item(GUEST, result.cart_item.id)

    topics = [call.kwargs["topic"] for call in events.publish_event.await_args_list]
    assert topics == ["cart.item.added", "cart.item.removed"]
    added = events.publish_event.await_args_list[0].kwargs["payload"]
    assert added["total_items"] == 2
    assert added["action"] == "added"


@pytest.mark.asyncio
async def test_event_failure_does_not_break_mutation(service, events, laptop):
    events.publish_event.side_effect = RuntimeError("broker down")

    result = await service.add_item(GUEST, "P1", 1)
    assert result.cart.total_items == 1


def test_purge_removes_only_idle_guest_carts(service, carts):
    old_guest = service.resolve_cart(Identity.guest("old"))
    fresh_guest = service.resolve_cart(Identity.guest("fresh"))
    old_user = service.resolve_cart(USER)
    old_guest.updated_at = utcnow() - timedelta(days=8)
    old_user.updated_at = utcnow() - timedelta(days=30)

    assert service.purge_expired_guest_carts() == 1
    assert set(carts.carts) == {fresh_guest.id, old_user.id}
