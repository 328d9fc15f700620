"""
HTTP routing and behavior for the application,
separated from app.py for testing purposes.
"""

import logging

from flask import Flask, g, jsonify, request

from auth import CredentialStore, TokenService, require_supplier
from config import Settings, load_settings
from errors import PriceListError
from price_list_service import PriceListService
from storage_strategy import get_storage_strategy, StorageStrategy

logger = logging.getLogger(__name__)

TESTING_JWT_SECRET = 'testing-secret-not-for-production-use'


def _send_response(status: int,
                   success: bool,
                   data,
                   message: str,
                   errors: list[str] | None = None):
    """Wrap a result in the {success, data, message, errors} envelope."""

    return jsonify({
        'success': success,
        'data': data,
        'message': message,
        'errors': errors or []
    }), status


def _invalid_data():
    return _send_response(400, False, None, 'Datos inválidos',
                          ['Se requiere un arreglo de datos'])


def _error_response(error: PriceListError, fallback_message: str):
    """Map a layer error to its envelope (400 for input, 500 for storage)."""

    if error.status_code >= 500:
        logger.error('%s: %s', fallback_message, error)
        message = fallback_message
    else:
        message = str(error)
    return _send_response(error.status_code, False, None, message,
                          [str(error)])


def _request_data() -> list | None:
    """Get body['data'] if the body is an object holding a list there."""

    body = request.get_json(silent=True)
    if not isinstance(body, dict) or not isinstance(body.get('data'), list):
        return None
    return body['data']


def _stamp_supplier(records: list, supplier_id: int) -> list:
    """Overwrite any client-sent supplier id with the caller's."""

    return [{
        **record, 'supplier_id': supplier_id
    } if isinstance(record, dict) else record for record in records]


def create_app(
        testing: bool,
        settings: Settings | None = None) -> tuple[Flask, StorageStrategy]:
    """Initiate and get the "global" objects for the Flask app."""

    settings = settings or load_settings()

    jwt_secret = settings.jwt_secret
    if not jwt_secret:
        if not testing:
            raise RuntimeError('JWT_SECRET is not set')
        jwt_secret = TESTING_JWT_SECRET

    app = Flask(__name__)

    storage_strategy: StorageStrategy = get_storage_strategy(
        None if testing else app, settings)
    service = PriceListService(storage_strategy)
    credential_store = CredentialStore.from_entries(
        settings.supplier_credentials)
    token_service = TokenService(jwt_secret, settings.jwt_expires_in)
    app.extensions['token_service'] = token_service

    @app.route('/api/auth/login', methods=['POST'])
    def login():
        """
        HTTP POST method to exchange supplier credentials for a token.

        Args:
            request.json (dict): username and password.

        Returns:
            {success, message, token} on success, 401 on bad credentials.
        """

        body = request.get_json(silent=True)
        if not isinstance(body, dict):
            body = {}
        username, password = body.get('username'), body.get('password')
        if not isinstance(username, str) or password in (None, ''):
            return jsonify({
                'success': False,
                'message': 'Usuario y contraseña son requeridos'
            }), 400

        supplier = credential_store.authenticate(username, password)
        if not supplier:
            logger.info('Failed login for %s', username)
            return jsonify({
                'success': False,
                'message': 'Credenciales inválidas'
            }), 401

        return jsonify({
            'success': True,
            'message': 'Login exitoso',
            'token': token_service.issue(supplier)
        })

    @app.route('/api/price-lists/validate', methods=['POST'])
    @require_supplier
    def insert_price_list():
        """
        HTTP POST method to insert a batch of price-list items.

        Every item is stamped with the authenticated supplier id.

        Args:
            request.json (dict): {'data': [PriceListItem-like dicts]}

        Returns:
            Envelope with the inserted rows (ids assigned).
        """

        data = _request_data()
        if data is None:
            return _invalid_data()

        try:
            result = service.insert(_stamp_supplier(data, g.supplier_id))
        except PriceListError as error:
            return _error_response(error, 'Error interno del servidor')

        return _send_response(200, True, result,
                              'Lista de precios procesada correctamente')

    @app.route('/api/price-lists/validate-products', methods=['GET'])
    @require_supplier
    def see_price_list():
        """
        HTTP GET method to list the caller's rows joined with the catalog.

        An optional `proveedor` query parameter is accepted only when it
        names the caller.
        """

        requested = request.args.get('proveedor', '').strip()
        if requested and requested != str(g.supplier_id):
            return _send_response(403, False, None,
                                  'No autorizado para consultar ese proveedor')

        try:
            result = service.query(g.supplier_id)
        except PriceListError as error:
            return _error_response(error,
                                   'Error al obtener la lista de precios')

        return _send_response(200, True, result,
                              'Datos obtenidos correctamente')

    @app.route('/api/price-lists/update-prices', methods=['POST'])
    @require_supplier
    def update_prices():
        """
        HTTP POST method to patch unit cost and discounts by row id.

        Only rows owned by the authenticated supplier are patched.

        Args:
            request.json (dict): {'data': [{'id', 'unit_cost'?,
                'discount1'?, 'discount2'?}]}

        Returns:
            Envelope with {updated_count, updated_items, message}.
        """

        data = _request_data()
        if data is None:
            return _invalid_data()

        try:
            result = service.update_prices(data, g.supplier_id)
        except PriceListError as error:
            return _error_response(error,
                                   'Error actualizando lista de precios')

        return _send_response(200, True, result,
                              'Lista de precios actualizada correctamente')

    @app.route('/api/price-lists/date-validity', methods=['POST'])
    @require_supplier
    def date_validity():
        """
        HTTP POST method to set the caller's price-list validity window.

        Args:
            request.json (dict): {'data': [{'id', 'start_date',
                'end_date'}]}
        """

        data = _request_data()
        if data is None:
            return _invalid_data()

        try:
            result = service.set_validity(_stamp_supplier(data, g.supplier_id))
        except PriceListError as error:
            return _error_response(error,
                                   'Error actualizando validez de fechas')

        return _send_response(200, True, result,
                              'Validez de fechas actualizada correctamente')

    return app, storage_strategy
