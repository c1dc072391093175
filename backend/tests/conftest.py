"""
Pytest fixtures for cafe POS backend tests.

Provides test database setup, a small demo catalog, staff principals,
customers and an authenticated test client.
"""

from types import SimpleNamespace

import pytest

from cafepos import create_app
from cafepos.extensions import db
from cafepos.models import (
    Addon,
    Category,
    CategoryAddon,
    Customer,
    ItemAddon,
    ItemVariant,
    MenuItem,
)
from cafepos.models.auth import ROLE_ADMIN, ROLE_MANAGER
from cafepos.services.auth_service import create_user
from cafepos.services.permission_service import Principal


PASSWORD = "Password123!"


@pytest.fixture(scope='session')
def app():
    """Create application for testing."""
    app = create_app({
        'TESTING': True,
        'SQLALCHEMY_DATABASE_URI': 'sqlite:///:memory:',
        'SQLALCHEMY_TRACK_MODIFICATIONS': False,
        'LOG_LEVEL': 'WARNING',
    })

    with app.app_context():
        db.create_all()
        yield app
        db.drop_all()


@pytest.fixture(scope='function')
def client(app):
    """Create test client."""
    return app.test_client()


@pytest.fixture(scope='function', autouse=True)
def db_session(app):
    """Create fresh database for each test."""
    with app.app_context():
        # Clear all data but keep schema
        meta = db.metadata
        for table in reversed(meta.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        yield db.session

        # Cleanup after test
        db.session.rollback()
        db.session.remove()


# =============================================================================
# STAFF
# =============================================================================


@pytest.fixture(scope='function')
def admin_user(db_session):
    return create_user("admin", "admin@cafe.test", PASSWORD, ROLE_ADMIN, rounds=4)


@pytest.fixture(scope='function')
def manager_user(db_session):
    return create_user("manager", "manager@cafe.test", PASSWORD, ROLE_MANAGER, rounds=4)


@pytest.fixture(scope='function')
def admin(admin_user):
    """ADMIN principal."""
    return Principal.from_user(admin_user)


@pytest.fixture(scope='function')
def manager(manager_user):
    """MANAGER principal."""
    return Principal.from_user(manager_user)


# =============================================================================
# CATALOG
# =============================================================================


@pytest.fixture(scope='function')
def catalog(db_session):
    """
    Demo catalog. Returns ids only (rows expire on commit).

    Bowls (flat priced):
      - Grilled Chicken Breast 180.00
      - Paneer Tikka Bowl 170.00 (Extra Chicken excluded)
      - Party Platter 1000.00
      - Seasonal Soup 90.00 (unavailable)
    Beverages (variant priced):
      - Cold Coffee: 250ml 90.00, 400ml 130.00, 1L 250.00 (unavailable)
    Addons:
      - Extra Rice 40.00, cap 3, linked to bowls
      - Boiled Egg 20.00, no cap, linked to bowls at 15.00;
        Grilled Chicken Breast overrides to 10.00 with cap 2
      - Extra Chicken 70.00, cap 2, linked to bowls
      - Truffle Oil 50.00, unavailable, linked to bowls
      - Extra Shot 30.00, cap 2, allowed on Cold Coffee only
    """
    bowls = Category(name="Bowls", slug="bowls", display_order=0)
    beverages = Category(name="Beverages", slug="beverages", display_order=1)
    db_session.add_all([bowls, beverages])
    db_session.flush()

    chicken = MenuItem(
        category_id=bowls.id, name="Grilled Chicken Breast", slug="grilled-chicken-breast",
        diet_type="NON_VEG", base_price_cents=18000,
    )
    paneer = MenuItem(
        category_id=bowls.id, name="Paneer Tikka Bowl", slug="paneer-tikka-bowl",
        diet_type="VEG", base_price_cents=17000,
    )
    platter = MenuItem(
        category_id=bowls.id, name="Party Platter", slug="party-platter",
        diet_type="NON_VEG", base_price_cents=100000,
    )
    soup = MenuItem(
        category_id=bowls.id, name="Seasonal Soup", slug="seasonal-soup",
        diet_type="VEG", base_price_cents=9000, is_available=False,
    )
    coffee = MenuItem(
        category_id=beverages.id, name="Cold Coffee", slug="cold-coffee",
        diet_type="VEG", base_price_cents=None, has_variants=True,
    )
    db_session.add_all([chicken, paneer, platter, soup, coffee])
    db_session.flush()

    small = ItemVariant(menu_item_id=coffee.id, name="250ml", price_cents=9000, display_order=0)
    large = ItemVariant(menu_item_id=coffee.id, name="400ml", price_cents=13000, display_order=1)
    litre = ItemVariant(
        menu_item_id=coffee.id, name="1L", price_cents=25000, display_order=2, is_available=False,
    )
    db_session.add_all([small, large, litre])

    rice = Addon(name="Extra Rice", slug="extra-rice", price_cents=4000, unit="serving", max_quantity=3)
    egg = Addon(name="Boiled Egg", slug="boiled-egg", price_cents=2000, unit="piece", addon_group="Protein")
    extra_chicken = Addon(
        name="Extra Chicken", slug="extra-chicken", price_cents=7000, unit="100g",
        max_quantity=2, addon_group="Protein",
    )
    truffle = Addon(name="Truffle Oil", slug="truffle-oil", price_cents=5000, is_available=False)
    shot = Addon(name="Extra Shot", slug="extra-shot", price_cents=3000, max_quantity=2)
    db_session.add_all([rice, egg, extra_chicken, truffle, shot])
    db_session.flush()

    db_session.add_all([
        CategoryAddon(category_id=bowls.id, addon_id=rice.id),
        CategoryAddon(category_id=bowls.id, addon_id=egg.id, price_override_cents=1500),
        CategoryAddon(category_id=bowls.id, addon_id=extra_chicken.id),
        CategoryAddon(category_id=bowls.id, addon_id=truffle.id),
        ItemAddon(menu_item_id=chicken.id, addon_id=egg.id, price_override_cents=1000, max_quantity=2),
        ItemAddon(menu_item_id=paneer.id, addon_id=extra_chicken.id, is_allowed=False),
        ItemAddon(menu_item_id=coffee.id, addon_id=shot.id, is_allowed=True),
    ])
    db_session.commit()

    return SimpleNamespace(
        bowls=bowls.id,
        beverages=beverages.id,
        chicken=chicken.id,
        paneer=paneer.id,
        platter=platter.id,
        soup=soup.id,
        coffee=coffee.id,
        coffee_small=small.id,
        coffee_large=large.id,
        coffee_litre=litre.id,
        rice=rice.id,
        egg=egg.id,
        extra_chicken=extra_chicken.id,
        truffle=truffle.id,
        shot=shot.id,
    )


# =============================================================================
# CUSTOMERS
# =============================================================================


@pytest.fixture(scope='function')
def customer(db_session):
    """Active customer with a loyalty balance of 500 points."""
    row = Customer(
        first_name="Asha",
        last_name="Rao",
        phone="9876543210",
        email="asha@example.com",
        loyalty_points=500,
    )
    db_session.add(row)
    db_session.commit()
    return row


@pytest.fixture(scope='function')
def inactive_customer(db_session):
    row = Customer(first_name="Old", last_name="Account", phone="9000000001", is_active=False)
    db_session.add(row)
    db_session.commit()
    return row


def chicken_with_rice(catalog, quantity=1, rice=2):
    """Grilled Chicken Breast with Extra Rice: 180 + 40 x rice per unit."""
    return {
        "menu_item_id": catalog.chicken,
        "addon_selections": [{"addon_id": catalog.rice, "quantity": rice}],
        "quantity": quantity,
    }


# =============================================================================
# HTTP
# =============================================================================


def get_auth_token(client, username: str, password: str = PASSWORD) -> str:
    """Helper to get auth token for a user."""
    response = client.post('/api/auth/login', json={
        'username': username,
        'password': password
    })
    if response.status_code == 200:
        return response.json.get('token')
    return None


def auth_headers(token: str) -> dict:
    """Helper to create Authorization headers."""
    return {'Authorization': f'Bearer {token}'}


@pytest.fixture(scope='function')
def admin_headers(client, admin_user):
    return auth_headers(get_auth_token(client, "admin"))


@pytest.fixture(scope='function')
def manager_headers(client, manager_user):
    return auth_headers(get_auth_token(client, "manager"))
