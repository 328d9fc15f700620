"""Records passed between the service layers."""

from dataclasses import dataclass, field


@dataclass(frozen=True)
class PriceListItem:
    supplier_code: str
    sap_code: str | None = None
    description: str | None = None
    unit_cost: float | None = None
    discount1: int | None = None
    discount2: int | None = None
    supplier_id: int | None = None  # stamped from the authenticated caller


@dataclass(frozen=True)
class UpdatePriceListItem:
    """
    Sparse patch for one price-list row.

    Only the names listed in `fields` are written; the others keep their
    stored value. A name in `fields` whose value is None sets the column
    to NULL.
    """

    id: int
    unit_cost: float | None = None
    discount1: int | None = None
    discount2: int | None = None
    fields: frozenset[str] = frozenset()

    def changes(self) -> dict:
        """Get the present fields as a name -> value dict."""

        return {name: getattr(self, name) for name in sorted(self.fields)}


@dataclass(frozen=True)
class SupplierPriceRow:
    id: int  # primary key (auto-incremented)
    supplier_code: str
    sap_code: str | None
    unit_cost: float | None
    discount1: int | float | None
    discount2: int | float | None
    supplier_id: int | None
    updated_at: str | None = None
    # joined from the reference table (None when there is no match)
    description: str | None = None
    tax_type: str | None = None
    gross_price: float | None = None
    net_price: float | None = None
    reference_updated_at: str | None = None


@dataclass(frozen=True)
class ValidityWindow:
    id: int
    supplier_id: int  # unique: one window per supplier
    start_date: str
    end_date: str


@dataclass(frozen=True)
class UpdateResult:
    updated_count: int
    updated_items: list[SupplierPriceRow] = field(default_factory=list)
    message: str = ''


@dataclass(frozen=True)
class Supplier:
    id: int
    username: str
    name: str | None = None
    email: str | None = None
