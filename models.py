"""SQLAlchemy table models backing DatabaseStorageStrategy."""

from datetime import datetime, timezone

from flask_sqlalchemy import SQLAlchemy

db = SQLAlchemy()


def utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class SupplierPrice(db.Model):
    __tablename__ = 'supplier_price_list'

    id = db.Column(db.Integer, primary_key=True)
    cod_prov = db.Column(db.String(12), nullable=False, index=True)
    cod_sap = db.Column(db.String(6))
    costo_unitario = db.Column(db.Numeric(14, 4, asdecimal=False))
    descuento1 = db.Column(db.Numeric(5, 2, asdecimal=False))
    descuento2 = db.Column(db.Numeric(5, 2, asdecimal=False))
    proveedor_id = db.Column(db.Integer, index=True)
    fecha_actualizacion = db.Column(db.DateTime, default=utcnow)
    updated_at = db.Column(db.DateTime)


class SupplierDetail(db.Model):
    """
    Reference catalog maintained outside this service (read-only here).

    Joined to supplier_price_list on ref_proveedor = cod_prov.
    """

    __tablename__ = 'supplier_detail'

    id = db.Column(db.Integer, primary_key=True)
    ref_proveedor = db.Column(db.String(12), index=True)
    descripcion = db.Column(db.String(255))
    tipo_impuesto = db.Column(db.String(32))
    precio_bruto = db.Column(db.Numeric(14, 4, asdecimal=False))
    precio_neto = db.Column(db.Numeric(14, 4, asdecimal=False))
    fecha_actualizacion = db.Column(db.DateTime)


class PriceListValidity(db.Model):
    __tablename__ = 'price_list_validity'

    id = db.Column(db.Integer, primary_key=True)
    id_proveedor = db.Column(db.Integer, unique=True, nullable=False)
    fecha_inicio = db.Column(db.Date, nullable=False)
    fecha_fin = db.Column(db.Date, nullable=False)
