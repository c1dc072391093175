# Overview: Flask CLI command groups for bootstrap and inspection.

# backend/cafepos/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init
#   Idempotent: creates tables, default settings, and the admin/manager users.
# - python -m flask system seed-menu
#   Idempotent: demo categories, items, variants and addons.
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --username alex --email alex@cafe.local --password "Password123!" --role MANAGER
# - python -m flask users list
#
# Settings:
# - python -m flask settings show

import json

import click
from flask.cli import with_appcontext

from .errors import CoreError
from .extensions import db
from .models import (
    Addon,
    Category,
    CategoryAddon,
    ItemAddon,
    ItemVariant,
    MenuItem,
    User,
)
from .models.auth import ROLE_ADMIN, ROLE_MANAGER, ROLES
from .models.menu import DIET_EGGETARIAN, DIET_NON_VEG, DIET_VEG, DIET_VEGAN
from .money import to_cents
from .services import settings_service
from .services.auth_service import create_user, PasswordValidationError


DEFAULT_PASSWORD = "Password123!"


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """
    Initialize the POS: tables, default settings and default users.

    Creates:
    - Settings: loyalty_points_ratio, tier_thresholds, vip_order_threshold
    - Users: admin/admin@cafe.local (ADMIN), manager/manager@cafe.local (MANAGER)
    - All passwords default to: "Password123!"

    SECURITY: Change passwords immediately in production!
    """
    click.echo("START Initializing cafe POS...")

    db.create_all()
    click.echo("PASS Tables ready")

    added = settings_service.ensure_default_settings()
    click.echo(f"PASS Default settings inserted: {added}")

    click.echo("\nUSERS Creating default users...")
    default_users = [
        ("admin", "admin@cafe.local", ROLE_ADMIN),
        ("manager", "manager@cafe.local", ROLE_MANAGER),
    ]
    for username, email, role in default_users:
        existing = db.session.query(User).filter_by(username=username).first()
        if existing:
            click.echo(f"WARN  User '{username}' already exists, skipping...")
            continue
        try:
            create_user(username=username, email=email, password=DEFAULT_PASSWORD, role=role)
            click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        except CoreError as e:
            db.session.rollback()
            click.echo(f"FAIL Failed to create user '{username}': {e.message}")

    click.echo("\n" + "="*60)
    click.echo("DONE Cafe POS Initialized")
    click.echo("="*60)
    click.echo("\nDefault Credentials (CHANGE IN PRODUCTION!):")
    click.echo("   admin   -> admin@cafe.local   / Password123!")
    click.echo("   manager -> manager@cafe.local / Password123!")
    click.echo("")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Confirm destructive reset')
@with_appcontext
def reset_db(yes):
    """DEV/TEST only: drop and recreate all tables."""
    if not yes:
        click.echo("FAIL Refusing to reset without --yes")
        return
    db.drop_all()
    db.create_all()
    click.echo("PASS Database reset")


# Demo catalog: (category, slug, [items]); item = (name, slug, diet, price or None, variants)
DEMO_CATEGORIES = [
    ("Bowls", "bowls", [
        ("Grilled Chicken Breast", "grilled-chicken-breast", DIET_NON_VEG, "180.00", []),
        ("Paneer Tikka Bowl", "paneer-tikka-bowl", DIET_VEG, "170.00", []),
        ("Egg Bhurji Bowl", "egg-bhurji-bowl", DIET_EGGETARIAN, "150.00", []),
    ]),
    ("Salads", "salads", [
        ("Garden Salad", "garden-salad", DIET_VEGAN, None, [("Half", "90.00"), ("Full", "150.00")]),
    ]),
    ("Beverages", "beverages", [
        ("Cold Coffee", "cold-coffee", DIET_VEG, None, [("250ml", "90.00"), ("400ml", "130.00")]),
        ("Fresh Lime Soda", "fresh-lime-soda", DIET_VEGAN, "60.00", []),
    ]),
]

# (name, slug, price, unit, max_quantity, group, categories linked)
DEMO_ADDONS = [
    ("Extra Rice", "extra-rice", "40.00", "serving", 3, "Sides", ["bowls"]),
    ("Boiled Egg", "boiled-egg", "20.00", "piece", 4, "Protein", ["bowls", "salads"]),
    ("Extra Chicken", "extra-chicken", "70.00", "100g", 2, "Protein", ["bowls"]),
    ("Honey Mustard Dressing", "honey-mustard-dressing", "25.00", "serving", None, "Dressings", ["salads"]),
    ("Extra Shot", "extra-shot", "30.00", "piece", 2, None, []),
]


@system_group.command('seed-menu')
@with_appcontext
def seed_menu():
    """Insert the demo menu (skips anything whose slug already exists)."""
    created = 0
    categories: dict[str, Category] = {}
    for position, (cat_name, cat_slug, items) in enumerate(DEMO_CATEGORIES):
        category = db.session.query(Category).filter_by(slug=cat_slug).first()
        if not category:
            category = Category(name=cat_name, slug=cat_slug, display_order=position)
            db.session.add(category)
            db.session.flush()
            created += 1
        categories[cat_slug] = category

        for item_pos, (name, slug, diet, price, variants) in enumerate(items):
            if db.session.query(MenuItem).filter_by(category_id=category.id, slug=slug).first():
                continue
            item = MenuItem(
                category_id=category.id,
                name=name,
                slug=slug,
                diet_type=diet,
                base_price_cents=to_cents(price) if price is not None else None,
                has_variants=bool(variants),
                display_order=item_pos,
            )
            db.session.add(item)
            db.session.flush()
            for var_pos, (var_name, var_price) in enumerate(variants):
                db.session.add(ItemVariant(
                    menu_item_id=item.id,
                    name=var_name,
                    price_cents=to_cents(var_price),
                    display_order=var_pos,
                ))
            created += 1

    for name, slug, price, unit, max_qty, group, linked in DEMO_ADDONS:
        addon = db.session.query(Addon).filter_by(slug=slug).first()
        if not addon:
            addon = Addon(
                name=name,
                slug=slug,
                price_cents=to_cents(price),
                unit=unit,
                max_quantity=max_qty,
                addon_group=group,
            )
            db.session.add(addon)
            db.session.flush()
            created += 1
        for cat_slug in linked:
            category = categories[cat_slug]
            exists = db.session.query(CategoryAddon).filter_by(
                category_id=category.id, addon_id=addon.id
            ).first()
            if not exists:
                db.session.add(CategoryAddon(category_id=category.id, addon_id=addon.id))

    # Extra Shot is offered on Cold Coffee only, through an item rule
    coffee = db.session.query(MenuItem).filter_by(slug="cold-coffee").first()
    shot = db.session.query(Addon).filter_by(slug="extra-shot").first()
    if coffee and shot and not db.session.query(ItemAddon).filter_by(
        menu_item_id=coffee.id, addon_id=shot.id
    ).first():
        db.session.add(ItemAddon(menu_item_id=coffee.id, addon_id=shot.id, is_allowed=True))

    db.session.commit()
    click.echo(f"PASS Demo menu seeded ({created} new rows)")


# =============================================================================
# USER MANAGEMENT COMMANDS
# =============================================================================

@click.group('users')
def users_group():
    """User inspection and bootstrap commands."""


@users_group.command('create')
@click.option('--username', prompt=True, help='Username')
@click.option('--email', prompt=True, help='Email address')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Password')
@click.option('--role', type=click.Choice(list(ROLES)), prompt=True, help='Role')
@with_appcontext
def create_user_cli(username, email, password, role):
    """
    Create a new staff user.

    Password must meet strength requirements:
    - Minimum 8 characters
    - At least one uppercase letter, lowercase letter, digit and special character
    """
    try:
        create_user(username=username, email=email, password=password, role=role)
        click.echo(f"PASS Created user: {username} ({email}) with role '{role}'")
        click.echo("SECURITY Password securely hashed with bcrypt")
    except PasswordValidationError as e:
        db.session.rollback()
        click.echo(f"FAIL Password validation failed: {e.message}")
    except CoreError as e:
        db.session.rollback()
        click.echo(f"FAIL Failed to create user: {e.message}")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their roles."""
    users = db.session.query(User).order_by(User.id.asc()).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*70)
    click.echo(f"{'ID':<5} {'Username':<20} {'Email':<28} {'Role':<9} {'Active'}")
    click.echo("="*70)
    for user in users:
        click.echo(
            f"{user.id:<5} {user.username:<20} {user.email:<28} {user.role:<9} "
            f"{'Yes' if user.is_active else 'No'}"
        )
    click.echo("="*70 + "\n")


# =============================================================================
# SETTINGS COMMANDS
# =============================================================================

@click.group('settings')
def settings_group():
    """Loyalty settings inspection."""


@settings_group.command('show')
@with_appcontext
def show_settings():
    """Print the effective value of every setting."""
    for key, entry in settings_service.get_all_settings().items():
        source = "default" if entry["is_default"] else "stored"
        click.echo(f"{key} ({source}): {json.dumps(entry['value'], sort_keys=True)}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(settings_group)
