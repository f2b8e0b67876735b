"""Middleware for authentication and tenant context."""
from functools import wraps
from flask import session, g, current_app
from stockpos.database import get_session
from stockpos.exceptions import UnauthorizedError
from stockpos.models import Tenant


def load_tenant():
    """
    Load the authenticated tenant into g (Flask's per-request global).

    Called before each request. Sets g.tenant_id and g.tenant only for an
    existing, active tenant; otherwise both stay None.
    """
    g.tenant = None
    g.tenant_id = None

    tenant_id = session.get('tenant_id')
    if not tenant_id:
        return

    try:
        db_session = get_session()
        if not db_session:
            return

        tenant = db_session.query(Tenant).filter_by(id=tenant_id).first()
        if tenant and tenant.active:
            g.tenant = tenant
            g.tenant_id = tenant.id
        else:
            # Tenant removed or deactivated - force re-login
            session.pop('tenant_id', None)
    except Exception as e:
        current_app.logger.error(f"Error in load_tenant: {e}")
        raise


def require_tenant(f):
    """
    Decorator: Require an authenticated tenant.

    Raises UnauthorizedError (rendered as JSON 401) when anonymous.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if g.get('tenant_id') is None:
            raise UnauthorizedError('Debes iniciar sesión para acceder a este recurso.')
        return f(*args, **kwargs)
    return decorated_function
