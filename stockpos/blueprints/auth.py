"""
Authentication blueprint for multi-tenant stores.
Handles store registration, login, logout and profile (JSON).
"""

from flask import Blueprint, request, session, g, jsonify, Response
from sqlalchemy.exc import IntegrityError
from sqlalchemy import func
from typing import List, Tuple
from stockpos.database import get_session
from stockpos.models import Tenant
from stockpos.utils.dates import resolve_timezone
import re
import logging
import unicodedata
from stockpos.exceptions import ValidationError, ConflictError, UnauthorizedError
from stockpos.middleware import require_tenant

logger = logging.getLogger(__name__)


auth_bp = Blueprint('auth', __name__, url_prefix='/auth')


def is_valid_email(email: str) -> bool:
    """Validate email format."""
    pattern = r'^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$'
    return re.match(pattern, email) is not None


def generate_slug(name: str) -> str:
    """Generate URL-safe slug from store name."""
    # Normalize unicode characters
    slug = unicodedata.normalize('NFKD', name)
    slug = slug.encode('ascii', 'ignore').decode('ascii')

    slug = slug.lower()
    slug = re.sub(r'[^a-z0-9]+', '-', slug)
    slug = slug.strip('-')

    return slug[:80] or 'almacen'


def _generate_unique_tenant_slug(db_session, store_name: str) -> str:
    """Generate a unique slug for a new tenant."""
    slug = generate_slug(store_name)
    base_slug = slug
    counter = 1
    while db_session.query(Tenant).filter_by(slug=slug).first():
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


def _validate_registration(data: dict) -> List[str]:
    """Validate registration fields and return list of errors."""
    errors = []
    if not (data.get('name') or '').strip():
        errors.append('El nombre del almacén es requerido.')
    if not (data.get('owner_name') or '').strip():
        errors.append('El nombre del dueño es requerido.')

    email = (data.get('email') or '').strip()
    if not email or not is_valid_email(email):
        errors.append('Email inválido.')

    password = data.get('password') or ''
    if len(password) < 6:
        errors.append('La contraseña debe tener al menos 6 caracteres.')

    timezone = data.get('timezone')
    if timezone and (not isinstance(timezone, str) or resolve_timezone(timezone, fallback='').key != timezone):
        errors.append('Zona horaria inválida.')
    return errors


def _json_body() -> dict:
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError('Se esperaba un cuerpo JSON')
    return data


@auth_bp.route('/register', methods=['POST'])
def register() -> Tuple[Response, int]:
    """Register a new store and log it in."""
    db_session = get_session()
    data = _json_body()
    errors = _validate_registration(data)
    if errors:
        raise ValidationError(errors[0], payload={'errors': errors})

    email = data['email'].strip().lower()
    if db_session.query(Tenant).filter(func.lower(Tenant.email) == email).first():
        raise ConflictError('Ya existe un almacén registrado con este email.')

    name = data['name'].strip()
    try:
        tenant = Tenant(
            slug=_generate_unique_tenant_slug(db_session, name),
            name=name,
            owner_name=data['owner_name'].strip(),
            email=email,
            phone=(data.get('phone') or '').strip() or None,
            address=(data.get('address') or '').strip() or None,
            timezone=data.get('timezone') or None,
            active=True
        )
        tenant.set_password(data['password'])
        db_session.add(tenant)
        db_session.commit()
    except IntegrityError:
        db_session.rollback()
        raise ConflictError('Ya existe un almacén registrado con este email.')

    session.clear()
    session['tenant_id'] = tenant.id
    session.permanent = True

    logger.info(f"[AUTH] Registered tenant {tenant.id} ({tenant.slug})")
    return jsonify({'status': 'ok', 'tenant': tenant.to_dict()}), 201


@auth_bp.route('/login', methods=['POST'])
def login() -> Response:
    """Validate email + password and store the tenant in the session."""
    db_session = get_session()
    data = _json_body()
    email = (data.get('email') or '').strip().lower()
    password = data.get('password') or ''

    if not email or not password:
        raise ValidationError('Email y contraseña son requeridos.')

    tenant = db_session.query(Tenant).filter(func.lower(Tenant.email) == email).first()
    if not tenant or not tenant.active or not tenant.check_password(password):
        raise UnauthorizedError('Email o contraseña incorrectos.')

    session.clear()
    session['tenant_id'] = tenant.id
    session.permanent = True

    return jsonify({'status': 'ok', 'tenant': tenant.to_dict()})


@auth_bp.route('/logout', methods=['POST'])
def logout() -> Response:
    """Clear the session."""
    session.clear()
    return jsonify({'status': 'ok'})


@auth_bp.route('/me', methods=['GET'])
@require_tenant
def me() -> Response:
    """Profile of the authenticated store."""
    return jsonify({'status': 'ok', 'tenant': g.tenant.to_dict()})


@auth_bp.route('/profile', methods=['PUT'])
@require_tenant
def update_profile() -> Response:
    """Update store name, owner name, phone, address and timezone. Email and password stay."""
    db_session = get_session()
    data = _json_body()
    changes = {}

    for field, label in (('name', 'El nombre del almacén'), ('owner_name', 'El nombre del dueño')):
        if field in data:
            value = data.get(field)
            if not isinstance(value, str) or not value.strip():
                raise ValidationError(f'{label} no puede estar vacío.', field=field)
            changes[field] = value.strip()[:100]

    if 'phone' in data:
        phone = str(data.get('phone') or '').strip() or None
        if phone and not re.match(r'^[\d\s\+\-\(\)]+$', phone):
            raise ValidationError('Teléfono inválido.', field='phone')
        changes['phone'] = phone
    if 'address' in data:
        changes['address'] = str(data.get('address') or '').strip()[:200] or None
    if 'timezone' in data:
        timezone = data.get('timezone') or None
        if timezone and (not isinstance(timezone, str) or resolve_timezone(timezone, fallback='').key != timezone):
            raise ValidationError('Zona horaria inválida.', field='timezone')
        changes['timezone'] = timezone

    tenant = g.tenant
    for field, value in changes.items():
        setattr(tenant, field, value)
    db_session.commit()

    logger.info(f"[AUTH] Tenant {tenant.id} updated its profile ({', '.join(changes) or 'no changes'})")
    return jsonify({'status': 'ok', 'message': 'Perfil actualizado exitosamente', 'tenant': tenant.to_dict()})
