from decimal import Decimal

import pytest
from sqlalchemy import create_engine, select
from sqlalchemy.orm import sessionmaker

from storefront.database import Base
from storefront.models import Cart, CartItem, Product
from storefront.repositories.sql import SqlCartRepository
from storefront.services.auth import Identity

GUEST = Identity.guest("guest_repo")
USER = Identity.user("user-repo")


@pytest.fixture
def sessions(tmp_path):
    """Фабрика сессий на файловой SQLite: каждая сессия со своим соединением"""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'carts.db'}",
        connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(bind=engine)
    yield sessionmaker(autocommit=False, autoflush=False, bind=engine)
    engine.dispose()


def _product(db, name: str, price: str = "10.00", stock: int = 10) -> str:
    product = Product(name=name, price=Decimal(price), category="Laptops", stock=stock)
    db.add(product)
    db.commit()
    return product.id


def _quantities(db, identity: Identity):
    cart = SqlCartRepository(db).get_by_owner(identity)
    if cart is None:
        return None
    return {item.product_id: item.quantity for item in cart.items}


def test_concurrent_insert_of_same_line_increments_winner(sessions, monkeypatch):
    first, second = sessions(), sessions()
    laptop_id = _product(first, "Laptop")

    repo_a = SqlCartRepository(first)
    cart_a = repo_a.create_for_owner(GUEST)

    repo_b = SqlCartRepository(second)
    cart_b = repo_b.get_by_owner(GUEST)
    product_b = second.get(Product, laptop_id)

    # Второй запрос прочитал корзину до того, как первый вставил строку
    real_find_line = repo_b._find_line
    lookups = []

    def stale_find_line(cart_id, product_id):
        lookups.append(product_id)
        if len(lookups) == 1:
            return None
        return real_find_line(cart_id, product_id)

    monkeypatch.setattr(repo_b, "_find_line", stale_find_line)

    repo_a.add_or_increment(cart_a, first.get(Product, laptop_id), 2)
    first.close()

    item = repo_b.add_or_increment(cart_b, product_b, 3)
    second.close()

    assert item.quantity == 5
    assert len(lookups) == 2

    check = sessions()
    rows = check.execute(select(CartItem).where(CartItem.product_id == laptop_id)).scalars().all()
    assert [row.quantity for row in rows] == [5]
    check.close()


def test_failed_merge_leaves_both_carts_untouched(sessions, monkeypatch):
    db = sessions()
    laptop_id = _product(db, "Laptop")
    mouse_id = _product(db, "Mouse", price="2.50")
    repo = SqlCartRepository(db)

    user_cart = repo.create_for_owner(USER)
    repo.add_or_increment(user_cart, db.get(Product, laptop_id), 3)
    guest_cart = repo.create_for_owner(GUEST)
    repo.add_or_increment(guest_cart, db.get(Product, laptop_id), 2)
    repo.add_or_increment(guest_cart, db.get(Product, mouse_id), 1)

    real_find_line = repo._find_line
    lookups = []

    def failing_find_line(cart_id, product_id):
        lookups.append(product_id)
        if len(lookups) == 2:
            raise RuntimeError("connection lost")
        return real_find_line(cart_id, product_id)

    monkeypatch.setattr(repo, "_find_line", failing_find_line)

    guest_cart = repo.get_by_owner(GUEST)
    user_cart = repo.get_by_owner(USER)
    with pytest.raises(RuntimeError):
        repo.merge(guest_cart, user_cart)
    db.close()

    check = sessions()
    assert _quantities(check, USER) == {laptop_id: 3}
    assert _quantities(check, GUEST) == {laptop_id: 2, mouse_id: 1}
    assert check.query(Cart).count() == 2
    check.close()


def test_merge_commits_all_lines_and_drops_guest_cart(sessions):
    db = sessions()
    laptop_id = _product(db, "Laptop")
    mouse_id = _product(db, "Mouse", price="2.50")
    repo = SqlCartRepository(db)

    user_cart = repo.create_for_owner(USER)
    repo.add_or_increment(user_cart, db.get(Product, laptop_id), 3)
    guest_cart = repo.create_for_owner(GUEST)
    repo.add_or_increment(guest_cart, db.get(Product, laptop_id), 2)
    repo.add_or_increment(guest_cart, db.get(Product, mouse_id), 1)

    moved = repo.merge(repo.get_by_owner(GUEST), repo.get_by_owner(USER))
    db.close()

    assert moved == 2
    check = sessions()
    assert _quantities(check, USER) == {laptop_id: 5, mouse_id: 1}
    assert _quantities(check, GUEST) is None
    check.close()
