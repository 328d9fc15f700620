"""
Validation and normalization of incoming price-list records.

Each validator is a pure factory: it takes a raw dict (as parsed from the
request body) and returns either `Ok(record)` or `Err(ValidationError)`.
Validators stop at the first broken rule, in the order the rules are listed
in each function. Use `unwrap` where raising is more convenient.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import ROUND_HALF_UP, Decimal
import re

from errors import ValidationError
from schema import PriceListItem, UpdatePriceListItem, ValidityWindow

SUPPLIER_CODE_MAX_LENGTH = 12
SAP_CODE_MAX_LENGTH = 6
DESCRIPTION_MAX_LENGTH = 40
DISCOUNT_RANGE = (0, 100)
# supplier_price_list.costo_unitario is NUMERIC(14, 4)
UNIT_COST_SCALE = 4
UNIT_COST_LIMIT = Decimal(10) ** (14 - UNIT_COST_SCALE)

_UNIT_COST_QUANTUM = Decimal(1).scaleb(-UNIT_COST_SCALE)

_SUPPLIER_CODE_RE = re.compile(r'[a-zA-Z0-9]+')
_SAP_CODE_RE = re.compile(r'\d+', re.ASCII)
_DESCRIPTION_RE = re.compile(r'[a-zA-Z0-9\s.,\-_/()#:+*%<>=^$&]+')
_DECIMAL_RE = re.compile(r'[+-]?(\d+(\.\d*)?|\.\d+)([eE][+-]?\d+)?',
                         re.ASCII)
_INTEGER_RE = re.compile(r'[+-]?\d+', re.ASCII)

# canonical name -> other keys accepted for it (camelCase, legacy client keys)
ALIASES = {
    'supplier_code': ('supplierCode', 'COD_PROV'),
    'sap_code': ('sapCode', 'COD_SAP'),
    'description': ('DESCRIP', ),
    'unit_cost': ('unitCost', 'COSTO_UNIT', 'costo_unitario'),
    'discount1': ('DESC1', 'descuento1'),
    'discount2': ('DESC2', 'descuento2'),
    'supplier_id': ('supplierId', 'PROVEEDOR', 'idProveedor'),
    'start_date': ('startDate', 'fecha_inicio'),
    'end_date': ('endDate', 'fecha_fin'),
}

PATCH_FIELDS = ('unit_cost', 'discount1', 'discount2')

_MISSING = object()


@dataclass(frozen=True)
class Ok:
    value: object

    @property
    def ok(self) -> bool:
        return True


@dataclass(frozen=True)
class Err:
    error: ValidationError

    @property
    def ok(self) -> bool:
        return False


Result = Ok | Err


def unwrap(result: Result):
    """Get the value of an Ok result, or raise the error of an Err."""

    if isinstance(result, Err):
        raise result.error
    return result.value


def lookup(raw: Mapping, name: str):
    """Find a field by its canonical name or any of its aliases."""

    for key in (name, *ALIASES.get(name, ())):
        if key in raw:
            return raw[key]
    return _MISSING


def _is_blank(value) -> bool:
    if value is _MISSING or value is None:
        return True
    return isinstance(value, str) and not value.strip()


def _normalize_supplier_code(value) -> str:
    if _is_blank(value) or isinstance(value, bool):
        raise ValidationError('supplier_code es requerido', 'supplier_code')
    code = str(value).strip()
    if len(code) > SUPPLIER_CODE_MAX_LENGTH:
        raise ValidationError(
            f'supplier_code admite máximo {SUPPLIER_CODE_MAX_LENGTH} caracteres',
            'supplier_code')
    if not _SUPPLIER_CODE_RE.fullmatch(code):
        raise ValidationError('supplier_code debe ser alfanumérico',
                              'supplier_code')
    return code


def _normalize_sap_code(value) -> str | None:
    if _is_blank(value):
        return None
    code = str(value).strip()
    if not _SAP_CODE_RE.fullmatch(code):
        raise ValidationError('sap_code debe ser numérico', 'sap_code')
    if len(code) > SAP_CODE_MAX_LENGTH:
        raise ValidationError(
            f'sap_code admite máximo {SAP_CODE_MAX_LENGTH} dígitos',
            'sap_code')
    return code


def _normalize_description(value) -> str | None:
    if _is_blank(value):
        return None
    if not isinstance(value, str):
        raise ValidationError('description debe ser texto', 'description')
    text = value.strip()
    if len(text) > DESCRIPTION_MAX_LENGTH:
        raise ValidationError(
            f'description admite máximo {DESCRIPTION_MAX_LENGTH} caracteres',
            'description')
    if not _DESCRIPTION_RE.fullmatch(text):
        raise ValidationError('description contiene caracteres no permitidos',
                              'description')
    return text


def normalize_unit_cost(value) -> float | None:
    """
    Parse a unit cost.

    Strings may carry thousands-separator commas ("13,500.00" -> 13500.0).
    Blank values become None. Negative, infinite, and NaN values fail, as do
    values too large for the costo_unitario column. The result is rounded
    (half up) to the column's UNIT_COST_SCALE decimals so the value compared
    on update is the value stored.
    """

    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValidationError('unit_cost debe ser numérico', 'unit_cost')
    if isinstance(value, (int, float)):
        number = Decimal(repr(value))
    elif isinstance(value, str):
        text = value.strip().replace(',', '')
        if not _DECIMAL_RE.fullmatch(text):
            raise ValidationError('unit_cost debe ser numérico', 'unit_cost')
        number = Decimal(text)
    else:
        raise ValidationError('unit_cost debe ser numérico', 'unit_cost')

    if not number.is_finite():
        raise ValidationError('unit_cost debe ser un número finito',
                              'unit_cost')
    if number < 0:
        raise ValidationError('unit_cost no puede ser negativo', 'unit_cost')

    if number < UNIT_COST_LIMIT:
        number = number.quantize(_UNIT_COST_QUANTUM, rounding=ROUND_HALF_UP)
    if number >= UNIT_COST_LIMIT:
        raise ValidationError(
            f'unit_cost debe ser menor que {UNIT_COST_LIMIT}', 'unit_cost')
    return float(number)


def normalize_discount(value, name: str) -> int | None:
    """Parse a discount percentage: an integer in [0, 100], or None."""

    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{name} debe ser un entero', name)
    if isinstance(value, int):
        number = value
    elif isinstance(value, float) and value.is_integer():
        number = int(value)
    elif isinstance(value, str) and _INTEGER_RE.fullmatch(value.strip()):
        number = int(value.strip())
    else:
        raise ValidationError(f'{name} debe ser un entero', name)

    low, high = DISCOUNT_RANGE
    if not low <= number <= high:
        raise ValidationError(f'{name} debe estar entre {low} y {high}', name)
    return number


def _normalize_int(value, name: str) -> int | None:
    if _is_blank(value):
        return None
    if isinstance(value, bool):
        raise ValidationError(f'{name} debe ser un entero', name)
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str) and _INTEGER_RE.fullmatch(value.strip()):
        return int(value.strip())
    raise ValidationError(f'{name} debe ser un entero', name)


def parse_instant(value) -> datetime:
    """
    Parse a date or date-time (ISO 8601) into an aware datetime.

    Naive values are taken as UTC so that date-only and offset-carrying
    inputs compare without error.
    """

    if isinstance(value, datetime):
        instant = value
    elif isinstance(value, date):
        instant = datetime(value.year, value.month, value.day)
    elif isinstance(value, str):
        instant = datetime.fromisoformat(value.strip())
    else:
        raise ValueError(f'unsupported date value: {value!r}')

    if instant.tzinfo is None:
        instant = instant.replace(tzinfo=timezone.utc)
    return instant


def _date_field(raw: Mapping, name: str) -> str:
    value = lookup(raw, name)
    if _is_blank(value):
        raise ValidationError(f'{name} es obligatoria', name)
    try:
        parse_instant(value)
    except ValueError as error:
        raise ValidationError(f'{name} no es una fecha válida', name) from error
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    return value


def _build_price_list_item(raw: Mapping) -> PriceListItem:
    return PriceListItem(
        supplier_code=_normalize_supplier_code(lookup(raw, 'supplier_code')),
        sap_code=_normalize_sap_code(lookup(raw, 'sap_code')),
        description=_normalize_description(lookup(raw, 'description')),
        unit_cost=normalize_unit_cost(lookup(raw, 'unit_cost')),
        discount1=normalize_discount(lookup(raw, 'discount1'), 'discount1'),
        discount2=normalize_discount(lookup(raw, 'discount2'), 'discount2'),
        supplier_id=_normalize_int(lookup(raw, 'supplier_id'), 'supplier_id'))


def validate_price_list_item(raw) -> Result:
    """
    Validate and normalize one raw price-list record.

    Rules, checked in order:
        1. supplier_code: required, 1-12 alphanumeric characters once trimmed.
        2. sap_code: optional, digits only, at most 6.
        3. description: optional, at most 40 characters from a restricted set.
        4. unit_cost: optional, finite and non-negative (commas stripped).
        5. discount1, discount2: optional integers in [0, 100].

    Args:
        raw (Mapping): the record as received, keyed by canonical names or
            any of their ALIASES.

    Returns:
        Ok(PriceListItem) or Err(ValidationError) for the first broken rule.
    """

    if not isinstance(raw, Mapping):
        return Err(ValidationError('Cada registro debe ser un objeto'))
    try:
        return Ok(_build_price_list_item(raw))
    except ValidationError as error:
        return Err(error)


def validate_validity_window(raw) -> Result:
    """
    Validate one supplier validity window.

    Fails when id or supplier_id is missing or zero, when a date cannot be
    parsed, or when start_date falls after end_date. Dates are kept as
    given; start_date == end_date is allowed.
    """

    if not isinstance(raw, Mapping):
        return Err(ValidationError('Cada registro debe ser un objeto'))
    try:
        window_id = _normalize_int(lookup(raw, 'id'), 'id')
        if not window_id:
            raise ValidationError('El ID es obligatorio', 'id')
        supplier_id = _normalize_int(lookup(raw, 'supplier_id'),
                                     'supplier_id')
        if not supplier_id:
            raise ValidationError('El ID del proveedor es obligatorio',
                                  'supplier_id')

        start_date = _date_field(raw, 'start_date')
        end_date = _date_field(raw, 'end_date')
        if parse_instant(start_date) > parse_instant(end_date):
            raise ValidationError(
                'La fecha de inicio no puede ser mayor que la fecha de fin',
                'start_date')
    except ValidationError as error:
        return Err(error)

    return Ok(
        ValidityWindow(id=window_id,
                       supplier_id=supplier_id,
                       start_date=start_date,
                       end_date=end_date))


def validate_price_patch(raw) -> Result:
    """
    Build a sparse UpdatePriceListItem from a raw patch.

    A field is part of the patch only when its key is present in `raw`;
    an explicit null sets the column to NULL, an absent key leaves it alone.
    """

    if not isinstance(raw, Mapping):
        return Err(ValidationError('Cada registro debe ser un objeto'))
    try:
        row_id = _normalize_int(lookup(raw, 'id'), 'id')
        if not row_id or row_id < 0:
            raise ValidationError('El ID es obligatorio', 'id')

        values = {}
        for name in PATCH_FIELDS:
            value = lookup(raw, name)
            if value is _MISSING:
                continue
            if name == 'unit_cost':
                values[name] = normalize_unit_cost(value)
            else:
                values[name] = normalize_discount(value, name)
    except ValidationError as error:
        return Err(error)

    return Ok(UpdatePriceListItem(id=row_id, fields=frozenset(values),
                                  **values))
