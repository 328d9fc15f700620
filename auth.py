"""Supplier login, bearer tokens, and the route guard that checks them."""

from datetime import datetime, timedelta, timezone
import functools
import logging

from flask import current_app, g, jsonify, request
import jwt

from errors import AuthError
from schema import Supplier

logger = logging.getLogger(__name__)

JWT_ALGORITHM = 'HS256'


class CredentialStore:
    """
    Fixed set of supplier accounts.

    A login is accepted when the username is known and the password is the
    supplier's id as a string.
    """

    def __init__(self, suppliers: list[Supplier] | tuple[Supplier, ...] = ()):
        self.suppliers = {supplier.username: supplier for supplier in suppliers}

    @classmethod
    def from_entries(cls, entries) -> 'CredentialStore':
        """Build a store from dicts with id, username, name, email."""

        return cls([
            Supplier(id=int(entry['id']),
                     username=str(entry['username']),
                     name=entry.get('name'),
                     email=entry.get('email')) for entry in entries
        ])

    def authenticate(self, username: str, password: str) -> Supplier | None:
        supplier = self.suppliers.get(username)
        if supplier is None or str(supplier.id) != str(password):
            return None
        return supplier


class TokenService:
    """Issues and verifies HS256 JWTs carrying the supplier identity."""

    def __init__(self, secret: str, expires_in: int = 60 * 60):
        self.secret = secret
        self.expires_in = expires_in

    def issue(self, supplier: Supplier) -> str:
        payload = {
            'id': supplier.id,
            'username': supplier.username,
            'name': supplier.name,
            'email': supplier.email,
            'exp': datetime.now(timezone.utc) +
            timedelta(seconds=self.expires_in),
        }
        return jwt.encode(payload, self.secret, algorithm=JWT_ALGORITHM)

    def verify(self, token: str) -> dict:
        """
        Decode a token.

        Raises:
            AuthError: the token is malformed, badly signed, expired, or
                carries no supplier id.
        """

        try:
            payload = jwt.decode(token, self.secret, algorithms=[JWT_ALGORITHM])
        except jwt.PyJWTError as error:
            raise AuthError('Token inválido o expirado') from error
        if not payload.get('id'):
            raise AuthError('Token inválido o expirado')
        return payload


def require_supplier(view):
    """
    Route decorator: check the bearer token and set g.supplier_id.

    Responds 401 when the Authorization header is missing and 403 when the
    token does not verify. Uses the TokenService in
    current_app.extensions['token_service'].
    """

    @functools.wraps(view)
    def wrapper(*args, **kwargs):
        header = request.headers.get('Authorization', '')
        if not header.strip():
            return jsonify({'success': False, 'message': 'Token requerido'}), 401

        scheme, _, token = header.partition(' ')
        if scheme.lower() != 'bearer' or not token.strip():
            return jsonify({
                'success': False,
                'message': 'Token inválido o expirado'
            }), 403

        token_service: TokenService = current_app.extensions['token_service']
        try:
            payload = token_service.verify(token.strip())
        except AuthError as error:
            logger.info('Rejected token: %s', error.__cause__ or error)
            return jsonify({'success': False, 'message': str(error)}), 403

        g.supplier_id = int(payload['id'])
        return view(*args, **kwargs)

    return wrapper
