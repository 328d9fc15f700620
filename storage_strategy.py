"""Storage-related functionality for the app."""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from copy import deepcopy
from datetime import datetime
import logging
import threading

from flask import Flask
from sqlalchemy import func, insert, or_, select, update
from sqlalchemy.dialects import postgresql, sqlite

from config import Settings, load_settings
from errors import InvalidInputError, PersistenceError, PriceListError
from models import PriceListValidity, SupplierDetail, SupplierPrice, db, utcnow
from schema import (PriceListItem, SupplierPriceRow, UpdatePriceListItem,
                    UpdateResult, ValidityWindow)
from validation import parse_instant

logger = logging.getLogger(__name__)

NO_DATA_MESSAGE = 'No se proporcionaron datos para actualizar'
NO_CHANGES_MESSAGE = 'No se modificaron registros (los valores eran iguales)'

# UpdatePriceListItem field -> supplier_price_list column
PATCH_COLUMNS = {
    'unit_cost': 'costo_unitario',
    'discount1': 'descuento1',
    'discount2': 'descuento2',
}


def display_number(value):
    """Report integral floats as ints (10.0 -> 10), leave the rest alone."""

    if isinstance(value, float) and value.is_integer():
        return int(value)
    return value


def _isoformat(value) -> str | None:
    if value is None:
        return None
    if isinstance(value, str):
        return value
    return value.isoformat()


def _require_list(data):
    if not isinstance(data, list):
        raise InvalidInputError('Los datos deben ser un array')


def _supplier_filter(supplier_filter) -> int | None:
    """Coerce the optional supplier filter to the internal supplier id."""

    if supplier_filter is None or supplier_filter == '':
        return None
    if isinstance(supplier_filter, bool):
        raise InvalidInputError('El filtro de proveedor debe ser numérico')
    try:
        return int(str(supplier_filter).strip())
    except ValueError as error:
        raise InvalidInputError(
            'El filtro de proveedor debe ser numérico') from error


@contextmanager
def _persistence_errors(action: str):
    """Re-raise storage failures as PersistenceError prefixed by action."""

    try:
        yield
    except PriceListError:
        raise
    except Exception as error:
        logger.exception('%s; transaction rolled back', action)
        raise PersistenceError(f'{action}: {error}') from error


class StorageStrategy(ABC):
    """
    Abstract base for price-list storage.

    The public batch operations live here so every backend shares the same
    ordering and rollback behavior; subclasses provide a transaction scope
    and the single-row primitives it hands a handle to.
    """

    @abstractmethod
    def transaction(self):
        """
        Context manager yielding a handle for one transaction.

        Commits when the block exits normally, rolls back when it raises,
        and releases the handle either way.
        """

        raise NotImplementedError()

    def insert_price_list(
            self, items: list[PriceListItem]) -> list[SupplierPriceRow]:
        """
        Insert a batch of validated items, all or nothing.

        Args:
            items (list[PriceListItem]): items in insertion order

        Returns:
            The inserted rows, with their assigned ids, in the same order.

        Raises:
            InvalidInputError: items is not a list.
            PersistenceError: any insert failed (nothing is kept).
        """

        _require_list(items)

        with _persistence_errors('Error al insertar lista de precios'):
            with self.transaction() as handle:
                inserted = []
                for item in items:
                    inserted.append(self._insert_row(handle, item))

        logger.info('Inserted %d price list rows', len(inserted))
        return inserted

    def query_prices(self, supplier_filter=None) -> list[SupplierPriceRow]:
        """
        Get price rows joined with the reference catalog.

        Args:
            supplier_filter (int|str|None): internal supplier id to filter on

        Returns:
            Distinct rows, most recently updated first.
        """

        supplier_id = _supplier_filter(supplier_filter)

        with _persistence_errors('Error al obtener lista de precios'):
            with self.transaction() as handle:
                return self._select_rows(handle, supplier_id)

    def update_prices(self,
                      patches: list[UpdatePriceListItem],
                      supplier_id: int | None = None) -> UpdateResult:
        """
        Apply sparse patches, writing only rows whose values change.

        A patch touches its row only if at least one present field differs
        from the stored value (NULL-safe). The whole batch is one
        transaction; a failing patch undoes the ones before it.

        Args:
            patches (list[UpdatePriceListItem]): patches in apply order
            supplier_id (int|None): when given, only rows owned by this
                supplier are patched; other ids count as unchanged
        """

        _require_list(patches)
        if not patches:
            return UpdateResult(updated_count=0,
                                updated_items=[],
                                message=NO_DATA_MESSAGE)

        now = utcnow()
        with _persistence_errors('Error al actualizar lista de precios'):
            with self.transaction() as handle:
                updated_items = []
                for patch in patches:
                    if not patch.fields:
                        continue
                    row = self._conditional_update(handle, patch, now,
                                                   supplier_id)
                    if row is not None:
                        updated_items.append(row)

        updated_count = len(updated_items)
        logger.info('Price update: %d of %d patches changed a row',
                    updated_count, len(patches))
        if updated_count == 0:
            message = NO_CHANGES_MESSAGE
        else:
            message = f'{updated_count} registros actualizados correctamente'
        return UpdateResult(updated_count=updated_count,
                            updated_items=updated_items,
                            message=message)

    def upsert_validity(
            self, windows: list[ValidityWindow]) -> list[ValidityWindow]:
        """
        Insert or replace the validity window of each supplier.

        The supplier id is the conflict key: a later window for the same
        supplier overwrites the stored dates (no history is kept). The
        row id is assigned by the store; the id carried by a window is only
        checked for presence, never written.

        Returns:
            The stored windows after the upsert, in input order.
        """

        _require_list(windows)

        with _persistence_errors('Error al actualizar vigencia'):
            with self.transaction() as handle:
                stored = []
                for window in windows:
                    stored.append(self._upsert_window(handle, window))

        logger.info('Upserted %d validity windows', len(stored))
        return stored

    @abstractmethod
    def _insert_row(self, handle, item: PriceListItem) -> SupplierPriceRow:
        """Subclass must override to insert one row and return it."""

        raise NotImplementedError()

    @abstractmethod
    def _select_rows(self, handle,
                     supplier_id: int | None) -> list[SupplierPriceRow]:
        """Subclass must override to run the joined, ordered read."""

        raise NotImplementedError()

    @abstractmethod
    def _conditional_update(
            self, handle, patch: UpdatePriceListItem, now: datetime,
            supplier_id: int | None) -> SupplierPriceRow | None:
        """
        Subclass must override to update one row if any patched value
        differs, returning the updated row or None if nothing was written.
        """

        raise NotImplementedError()

    @abstractmethod
    def _upsert_window(self, handle,
                       window: ValidityWindow) -> ValidityWindow:
        """Subclass must override to upsert one window keyed by supplier."""

        raise NotImplementedError()


class InMemoryStorageStrategy(StorageStrategy):
    """
    Storage strategy that keeps tables in dicts.

    Transactions snapshot the tables and restore them on failure, so the
    batch semantics match the database strategy. State is per process.
    """

    def __init__(self):
        self.price_table = {}
        self.next_price_table_id = 1
        self.reference_table = {}
        self.validity_table = {}
        self.next_validity_table_id = 1
        self._lock = threading.RLock()

    @contextmanager
    def transaction(self):
        """Hold the lock and restore the snapshot if the block raises."""

        with self._lock:
            snapshot = (deepcopy(self.price_table), self.next_price_table_id,
                        deepcopy(self.validity_table),
                        self.next_validity_table_id)
            try:
                yield self
            except BaseException:
                (self.price_table, self.next_price_table_id,
                 self.validity_table, self.next_validity_table_id) = snapshot
                raise

    def add_reference_row(self,
                          ref_code: str,
                          description: str | None = None,
                          tax_type: str | None = None,
                          gross_price: float | None = None,
                          net_price: float | None = None,
                          updated_at: datetime | None = None):
        """Seed the reference catalog (read-only to the repository)."""

        self.reference_table[ref_code] = {
            'description': description,
            'tax_type': tax_type,
            'gross_price': gross_price,
            'net_price': net_price,
            'reference_updated_at': _isoformat(updated_at),
        }

    def _insert_row(self, handle, item: PriceListItem) -> SupplierPriceRow:
        """Add a row to the in-memory price table."""

        row = {
            'id': self.next_price_table_id,
            'supplier_code': item.supplier_code,
            'sap_code': item.sap_code,
            'unit_cost': item.unit_cost,
            'discount1': item.discount1,
            'discount2': item.discount2,
            'supplier_id': item.supplier_id,
            'created_at': utcnow(),
            'updated_at': None,
        }
        self.next_price_table_id += 1
        self.price_table[row['id']] = row
        return self._to_price_row(row)

    def _select_rows(self, handle,
                     supplier_id: int | None) -> list[SupplierPriceRow]:
        """Join (without any indexing) against the reference dict."""

        rows = [
            row for row in self.price_table.values()
            if supplier_id is None or row['supplier_id'] == supplier_id
        ]
        rows.sort(key=lambda row: (self._last_update(row), row['id']),
                  reverse=True)

        joined = [
            self._to_price_row(row,
                               self.reference_table.get(row['supplier_code']))
            for row in rows
        ]
        return list(dict.fromkeys(joined))

    def _conditional_update(
            self, handle, patch: UpdatePriceListItem, now: datetime,
            supplier_id: int | None) -> SupplierPriceRow | None:
        """Update the in-memory row if any patched value differs."""

        row = self.price_table.get(patch.id)
        if row is None:
            return None
        if supplier_id is not None and row['supplier_id'] != supplier_id:
            return None

        changes = patch.changes()
        if all(row[name] == value for name, value in changes.items()):
            return None

        row.update(changes)
        row['updated_at'] = now
        return self._to_price_row(row)

    def _upsert_window(self, handle,
                       window: ValidityWindow) -> ValidityWindow:
        """Replace the in-memory window stored for the supplier."""

        existing = self.validity_table.get(window.supplier_id)
        if existing:
            window_id = existing.id
        else:
            window_id = self.next_validity_table_id
            self.next_validity_table_id += 1
        stored = ValidityWindow(
            id=window_id,
            supplier_id=window.supplier_id,
            start_date=parse_instant(window.start_date).date().isoformat(),
            end_date=parse_instant(window.end_date).date().isoformat())
        self.validity_table[window.supplier_id] = stored
        return stored

    @staticmethod
    def _last_update(row: dict) -> datetime:
        return row['updated_at'] or row['created_at']

    def _to_price_row(self,
                      row: dict,
                      reference: dict | None = None) -> SupplierPriceRow:
        return SupplierPriceRow(id=row['id'],
                                supplier_code=row['supplier_code'],
                                sap_code=row['sap_code'],
                                unit_cost=row['unit_cost'],
                                discount1=display_number(row['discount1']),
                                discount2=display_number(row['discount2']),
                                supplier_id=row['supplier_id'],
                                updated_at=_isoformat(self._last_update(row)),
                                **(reference or {}))


class DatabaseStorageStrategy(StorageStrategy):
    """
    Storage strategy backed by SQLAlchemy (PostgreSQL in production,
    SQLite for tests).

    Every operation runs in its own app context so it gets its own session;
    the session is removed, and its connection returned to the pool, when
    the context is popped.
    """

    def __init__(self,
                 app: Flask,
                 database_uri: str,
                 statement_timeout_ms: int | None = None):
        engine_options = {'pool_pre_ping': True}
        if statement_timeout_ms and database_uri.startswith('postgresql'):
            engine_options['connect_args'] = {
                'options': f'-c statement_timeout={int(statement_timeout_ms)}'
            }

        app.config['SQLALCHEMY_DATABASE_URI'] = database_uri
        app.config['SQLALCHEMY_ENGINE_OPTIONS'] = engine_options

        self.app = app
        self.db = db
        self.db.init_app(app)
        with app.app_context():
            self.db.create_all()

    @contextmanager
    def transaction(self):
        """Session in a fresh app context, inside session.begin()."""

        with self.app.app_context():
            session = self.db.session
            with session.begin():
                yield session

    def _insert_row(self, handle, item: PriceListItem) -> SupplierPriceRow:
        table = SupplierPrice.__table__
        statement = insert(table).values(
            cod_prov=item.supplier_code,
            cod_sap=item.sap_code,
            costo_unitario=item.unit_cost,
            descuento1=item.discount1,
            descuento2=item.discount2,
            proveedor_id=item.supplier_id,
            fecha_actualizacion=utcnow()).returning(*table.c)
        return self._to_price_row(handle.execute(statement).mappings().one())

    def _select_rows(self, handle,
                     supplier_id: int | None) -> list[SupplierPriceRow]:
        price = SupplierPrice.__table__
        detail = SupplierDetail.__table__
        last_update = func.coalesce(
            price.c.updated_at,
            price.c.fecha_actualizacion).label('ultima_actualizacion')

        statement = select(
            price.c.id,
            price.c.cod_prov,
            price.c.cod_sap,
            price.c.costo_unitario,
            price.c.descuento1,
            price.c.descuento2,
            price.c.proveedor_id,
            last_update,
            detail.c.descripcion,
            detail.c.tipo_impuesto,
            detail.c.precio_bruto,
            detail.c.precio_neto,
            detail.c.fecha_actualizacion.label('fecha_actualizacion_proveedor'),
        ).select_from(
            price.outerjoin(detail, price.c.cod_prov == detail.c.ref_proveedor)
        ).distinct()
        if supplier_id is not None:
            statement = statement.where(price.c.proveedor_id == supplier_id)
        statement = statement.order_by(last_update.desc(), price.c.id.desc())

        return [
            self._to_price_row(mapping)
            for mapping in handle.execute(statement).mappings()
        ]

    def _conditional_update(
            self, handle, patch: UpdatePriceListItem, now: datetime,
            supplier_id: int | None) -> SupplierPriceRow | None:
        table = SupplierPrice.__table__
        changes = {
            PATCH_COLUMNS[name]: value
            for name, value in patch.changes().items()
        }

        statement = update(table).where(table.c.id == patch.id).where(
            or_(*(table.c[column].is_distinct_from(value)
                  for column, value in changes.items()))).values(
                      updated_at=now, **changes).returning(*table.c)
        if supplier_id is not None:
            statement = statement.where(table.c.proveedor_id == supplier_id)

        mapping = handle.execute(statement).mappings().first()
        if mapping is None:
            return None
        return self._to_price_row(mapping)

    def _upsert_window(self, handle,
                       window: ValidityWindow) -> ValidityWindow:
        table = PriceListValidity.__table__
        dialect = handle.get_bind().dialect.name
        if dialect == 'postgresql':
            build_insert = postgresql.insert
        elif dialect == 'sqlite':
            build_insert = sqlite.insert
        else:
            raise PersistenceError(
                f'Upsert de vigencia no soportado para {dialect}')

        statement = build_insert(table).values(
            id_proveedor=window.supplier_id,
            fecha_inicio=parse_instant(window.start_date).date(),
            fecha_fin=parse_instant(window.end_date).date())
        statement = statement.on_conflict_do_update(
            index_elements=[table.c.id_proveedor],
            set_={
                'fecha_inicio': statement.excluded.fecha_inicio,
                'fecha_fin': statement.excluded.fecha_fin,
            }).returning(*table.c)

        mapping = handle.execute(statement).mappings().one()
        return ValidityWindow(id=mapping['id'],
                              supplier_id=mapping['id_proveedor'],
                              start_date=_isoformat(mapping['fecha_inicio']),
                              end_date=_isoformat(mapping['fecha_fin']))

    @staticmethod
    def _to_price_row(mapping) -> SupplierPriceRow:
        """Build a row from either a RETURNING or a joined SELECT mapping."""

        last_update = (mapping.get('ultima_actualizacion')
                       or mapping.get('updated_at')
                       or mapping.get('fecha_actualizacion'))
        return SupplierPriceRow(
            id=mapping['id'],
            supplier_code=mapping['cod_prov'],
            sap_code=mapping['cod_sap'],
            unit_cost=mapping['costo_unitario'],
            discount1=display_number(mapping['descuento1']),
            discount2=display_number(mapping['descuento2']),
            supplier_id=mapping['proveedor_id'],
            updated_at=_isoformat(last_update),
            description=mapping.get('descripcion'),
            tax_type=mapping.get('tipo_impuesto'),
            gross_price=mapping.get('precio_bruto'),
            net_price=mapping.get('precio_neto'),
            reference_updated_at=_isoformat(
                mapping.get('fecha_actualizacion_proveedor')))


def get_storage_strategy(app: Flask | None,
                         settings: Settings | None = None) -> StorageStrategy:
    """
    Factory function to get a storage strategy based on the current environment.

    By default, it gets a manual testing friendly in-memory storage strategy.
    If a 'DATABASE_URL' connection string is configured, it gets the
    SQLAlchemy-backed strategy.

    Args:
        app (Flask|None): the Flask app (None if unit testing)
        settings (Settings|None): configuration (read from the environment
            if not given)

    Returns:
        The new storage strategy instance.
    """

    if not app:
        return UnitTestingStorageStrategy()

    settings = settings or load_settings()
    if settings.database_url:
        return DatabaseStorageStrategy(app, settings.database_url,
                                       settings.statement_timeout_ms)

    return InMemoryStorageStrategy()


UnitTestingStorageStrategy = InMemoryStorageStrategy
