import click
from flask.cli import with_appcontext

from ethio_home import db
from ethio_home.models.user import User, ROLES
from ethio_home.utils.validators import validate_email, validate_password

ROLE_ALIASES = {
    'administrator': 'admin',
    'staff': 'employee',
    'customer': 'buyer',
    'owner': 'seller',
    'broker': 'agent',
}


@click.command('create-admin')
@with_appcontext
@click.argument('email')
@click.argument('name')
@click.argument('phone')
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
def create_admin(email, name, phone, password):
    """Create or reset a verified admin user"""
    email = email.strip().lower()
    if not validate_email(email):
        raise click.BadParameter('Invalid email address', param_hint='EMAIL')
    if not validate_password(password):
        raise click.BadParameter('Password must be at least 8 characters long', param_hint='--password')

    admin = User.query.filter_by(email=email).first()

    if admin:
        admin.set_password(password)
        admin.role = 'admin'
        admin.active = True
        admin.is_verified = True
        db.session.commit()
        click.echo(f'[SUCCESS] Admin {email} reset.')
    else:
        admin = User(name=name, email=email, phone=phone, role='admin', is_verified=True, active=True)
        admin.set_password(password)
        db.session.add(admin)
        db.session.commit()
        click.echo(f'[SUCCESS] Admin {email} created.')


@click.command('normalize-roles')
@with_appcontext
def normalize_roles():
    """Lower-case stored roles and map unknown values to buyer"""
    updated = 0
    for user in User.query.all():
        normalized = str(user.role or '').strip().lower()
        normalized = ROLE_ALIASES.get(normalized, normalized)
        if normalized not in ROLES:
            normalized = 'buyer'

        if user.role != normalized:
            click.echo(f'Fixing role for user {user.email}: {user.role} -> {normalized}')
            user.role = normalized
            updated += 1

    if updated:
        db.session.commit()
        click.echo(f'Updated {updated} user roles.')
    else:
        click.echo('All roles are valid.')


def register_commands(app):
    app.cli.add_command(create_admin)
    app.cli.add_command(normalize_roles)
