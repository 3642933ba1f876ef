# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/hirepay/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap:
# - python -m flask system init [--business "Acme Retail"] [--shop "Main Shop"]
#   Idempotent bootstrap: creates tables, a business, a shop and a super admin.
#
# Shops:
# - python -m flask shops create --business-slug acme --name "Kumasi Branch" --slug kumasi
# - python -m flask shops list
# - python -m flask shops stock --shop-slug main --sku TV-32 --quantity 10
#   Receive stock for a business product into a shop.
#
# Users:
# - python -m flask users create --email admin@hirepay.local --password "Password123!" [--super-admin]
# - python -m flask users add-member --email staff@hirepay.local --shop-slug main --role SALES_STAFF [--can-load-wallet]
# - python -m flask users add-business-admin --email owner@hirepay.local --business-slug acme
#
# Wallet inspection:
# - python -m flask wallet pending --shop-slug main
#   List pending deposits awaiting confirmation.
#
# Audit inspection:
# - python -m flask audit list [--entity-type WALLET_TRANSACTION] [--action CONFIRM_WALLET_DEPOSIT] [--limit 20]

import re

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import Business, Shop, User, WalletTransaction, Product
from .models.auth import SHOP_ROLES, ROLE_SALES_STAFF
from .services import audit_service
from .services.inventory_service import receive_stock, InventoryError
from .services.auth_service import create_user, add_business_admin, add_shop_member, PasswordValidationError, UserError
from .time_utils import to_utc_z


def _slugify(value: str) -> str:
    return re.sub(r"[^a-z0-9]+", "-", value.lower()).strip("-")


@click.group('system')
def system_group():
    """System bootstrap commands."""


@system_group.command('init')
@click.option('--business', 'business_name', default='Default Business', help='Business name')
@click.option('--shop', 'shop_name', default='Main Shop', help='First shop name')
@click.option('--admin-email', default='admin@hirepay.local', help='Super admin email')
@click.option('--admin-password', default='Password123!', help='Super admin password')
@with_appcontext
def init_system(business_name, shop_name, admin_email, admin_password):
    """
    Initialize HirePay: tables, a business with one shop, and a super admin.

    SECURITY: Change the admin password immediately in production!
    """
    click.echo("START Initializing HirePay...")
    db.create_all()

    business = db.session.query(Business).first()
    if not business:
        business = Business(name=business_name, slug=_slugify(business_name))
        db.session.add(business)
        db.session.commit()
        click.echo(f"PASS Created business: {business.name} ({business.slug})")
    else:
        click.echo(f"PASS Using existing business: {business.name} ({business.slug})")

    shop = db.session.query(Shop).filter_by(business_id=business.id).first()
    if not shop:
        shop = Shop(business_id=business.id, name=shop_name, slug=_slugify(shop_name))
        db.session.add(shop)
        db.session.commit()
        click.echo(f"PASS Created shop: {shop.name} ({shop.slug})")
    else:
        click.echo(f"PASS Using existing shop: {shop.name} ({shop.slug})")

    if not db.session.query(User).filter_by(email=admin_email.lower()).first():
        try:
            create_user(admin_email, admin_password, name="Administrator", is_super_admin=True)
        except (PasswordValidationError, UserError) as e:
            raise click.ClickException(str(e))
        click.echo(f"PASS Created super admin: {admin_email}")
    else:
        click.echo(f"PASS Super admin exists: {admin_email}")

    click.echo("DONE HirePay initialized")


@click.group('shops')
def shops_group():
    """Shop management commands."""


@shops_group.command('create')
@click.option('--business-slug', required=True)
@click.option('--name', required=True)
@click.option('--slug', default=None, help='Defaults to the slugified name')
@with_appcontext
def create_shop(business_slug, name, slug):
    business = db.session.query(Business).filter_by(slug=business_slug).first()
    if not business:
        raise click.ClickException(f"Business not found: {business_slug}")

    slug = slug or _slugify(name)
    if db.session.query(Shop).filter_by(slug=slug).first():
        raise click.ClickException(f"Shop slug already in use: {slug}")

    shop = Shop(business_id=business.id, name=name, slug=slug)
    db.session.add(shop)
    db.session.commit()
    click.echo(f"PASS Created shop {shop.name} ({shop.slug}, ID: {shop.id})")


@shops_group.command('list')
@with_appcontext
def list_shops():
    for shop in db.session.query(Shop).order_by(Shop.business_id, Shop.id).all():
        status = "active" if shop.is_active else "inactive"
        click.echo(f"{shop.id:>4}  {shop.slug:<24} {shop.name:<32} business={shop.business_id} {status}")


@shops_group.command('stock')
@click.option('--shop-slug', required=True)
@click.option('--sku', required=True)
@click.option('--quantity', type=int, required=True)
@with_appcontext
def stock_shop(shop_slug, sku, quantity):
    """Receive units of a product into a shop's stock."""
    shop = db.session.query(Shop).filter_by(slug=shop_slug).first()
    if not shop:
        raise click.ClickException(f"Shop not found: {shop_slug}")
    product = db.session.query(Product).filter_by(business_id=shop.business_id, sku=sku).first()
    if not product:
        raise click.ClickException(f"Product not found: {sku}")
    try:
        row = receive_stock(shop.id, product.id, quantity)
    except InventoryError as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS {product.sku} in {shop.slug}: {row.stock_quantity} on hand")


@click.group('users')
def users_group():
    """User and membership commands."""


@users_group.command('create')
@click.option('--email', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@click.option('--name', default=None)
@click.option('--super-admin', is_flag=True, default=False)
@with_appcontext
def create_user_command(email, password, name, super_admin):
    try:
        user = create_user(email, password, name=name, is_super_admin=super_admin)
    except (PasswordValidationError, UserError) as e:
        raise click.ClickException(str(e))
    click.echo(f"PASS Created user {user.email} (ID: {user.id})")


def _user_by_email(email: str) -> User:
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        raise click.ClickException(f"User not found: {email}")
    return user


@users_group.command('add-member')
@click.option('--email', required=True)
@click.option('--shop-slug', required=True)
@click.option('--role', type=click.Choice(SHOP_ROLES), default=ROLE_SALES_STAFF)
@click.option('--can-load-wallet', is_flag=True, default=False)
@with_appcontext
def add_member_command(email, shop_slug, role, can_load_wallet):
    user = _user_by_email(email)
    shop = db.session.query(Shop).filter_by(slug=shop_slug).first()
    if not shop:
        raise click.ClickException(f"Shop not found: {shop_slug}")
    member = add_shop_member(shop.id, user.id, role, can_load_wallet=can_load_wallet)
    click.echo(f"PASS {user.email} is {member.role} in {shop.slug} (can_load_wallet={member.can_load_wallet})")


@users_group.command('add-business-admin')
@click.option('--email', required=True)
@click.option('--business-slug', required=True)
@with_appcontext
def add_business_admin_command(email, business_slug):
    user = _user_by_email(email)
    business = db.session.query(Business).filter_by(slug=business_slug).first()
    if not business:
        raise click.ClickException(f"Business not found: {business_slug}")
    add_business_admin(business.id, user.id)
    click.echo(f"PASS {user.email} is a business admin of {business.slug}")


@click.group('wallet')
def wallet_group():
    """Wallet inspection commands."""


@wallet_group.command('pending')
@click.option('--shop-slug', required=True)
@with_appcontext
def pending_deposits(shop_slug):
    """List pending deposits awaiting shop admin confirmation."""
    shop = db.session.query(Shop).filter_by(slug=shop_slug).first()
    if not shop:
        raise click.ClickException(f"Shop not found: {shop_slug}")

    txns = db.session.query(WalletTransaction).filter_by(
        shop_id=shop.id,
        status="PENDING",
    ).order_by(WalletTransaction.created_at).all()

    if not txns:
        click.echo("No pending deposits")
        return

    for txn in txns:
        click.echo(
            f"{txn.id:>6}  {to_utc_z(txn.created_at)}  {txn.customer.full_name:<32} "
            f"{txn.amount_cents / 100:>12.2f}  {txn.payment_method or '-':<14} {txn.reference or ''}"
        )


@click.group('audit')
def audit_group():
    """Audit log inspection."""


@audit_group.command('list')
@click.option('--entity-type', default=None)
@click.option('--entity-id', default=None)
@click.option('--action', default=None)
@click.option('--limit', default=20, show_default=True)
@with_appcontext
def list_audit(entity_type, entity_id, action, limit):
    entries = audit_service.list_entries(
        entity_type=entity_type,
        entity_id=entity_id,
        action=action,
        limit=limit,
    )
    for entry in entries:
        click.echo(
            f"{to_utc_z(entry.created_at)}  {entry.action:<28} {entry.entity_type}:{entry.entity_id}  "
            f"actor={entry.actor_user_id}  {entry.metadata_json}"
        )


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(shops_group)
    app.cli.add_command(users_group)
    app.cli.add_command(wallet_group)
    app.cli.add_command(audit_group)
