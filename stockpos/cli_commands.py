"""
Flask CLI commands.

Commands:
- flask init-db: Create all tables
- flask create-tenant: Register a new store
"""

import click
import re
from stockpos.database import get_session, create_schema
from stockpos.models import Tenant


def init_cli_commands(app):
    """Register CLI commands with Flask app."""

    @app.cli.command('init-db')
    def init_db_command():
        """Create the database tables."""
        create_schema()
        click.echo(click.style('✅ Tablas creadas.', fg='green'))

    @app.cli.command('create-tenant')
    @click.option('--name', prompt='Nombre del almacén', help='Store name')
    @click.option('--owner', prompt='Nombre del dueño', help='Owner name')
    @click.option('--email', prompt=True, help='Store email address')
    @click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True, help='Store password')
    @click.option('--timezone', default=None, help='IANA timezone (default: STORE_TIMEZONE)')
    def create_tenant(name, owner, email, password, timezone):
        """Create a new store (tenant)."""
        from stockpos.blueprints.auth import _generate_unique_tenant_slug

        email_pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
        if not re.match(email_pattern, email):
            click.echo(click.style('❌ Email inválido. Use formato: user@example.com', fg='red'))
            return

        if len(password) < 6:
            click.echo(click.style('❌ La contraseña debe tener al menos 6 caracteres.', fg='red'))
            return

        db_session = get_session()
        email = email.strip().lower()
        if db_session.query(Tenant).filter_by(email=email).first():
            click.echo(click.style(f'❌ Ya existe un almacén con el email: {email}', fg='red'))
            return

        try:
            tenant = Tenant(
                slug=_generate_unique_tenant_slug(db_session, name),
                name=name.strip(),
                owner_name=owner.strip(),
                email=email,
                timezone=timezone,
                active=True
            )
            tenant.set_password(password)
            db_session.add(tenant)
            db_session.commit()
        except Exception as e:
            db_session.rollback()
            click.echo(click.style(f'❌ Error al crear almacén: {str(e)}', fg='red'))
            return

        click.echo(click.style('\n✅ Almacén creado exitosamente!', fg='green', bold=True))
        click.echo(f'   Nombre: {tenant.name}')
        click.echo(f'   Slug: {tenant.slug}')
        click.echo(f'   ID: {tenant.id}')
