"""ReferenceData -- immutable snapshot of lookups for one computation pass."""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import TypeVar

from invoice_kernel.domain.types import Account, LinkedAccountDefault, Product, TaxCode
from invoice_kernel.exceptions import DuplicateReferenceError

RECEIVABLES_LINK = "receivables"
DISCOUNTS_ALLOWED_LINK = "discounts_allowed"

_T = TypeVar("_T", TaxCode, Account, Product)


def _index(kind: str, records: Iterable[_T]) -> Mapping[str, _T]:
    by_id: dict[str, _T] = {}
    for record in records:
        if record.id in by_id:
            raise DuplicateReferenceError(kind, record.id)
        by_id[record.id] = record
    return MappingProxyType(by_id)


@dataclass(frozen=True)
class ReferenceData:
    """
    Read-only tax codes, accounts, products and linked-account defaults.

    Supplied in full by external collaborators before each pass. The
    engines only read from it.
    """

    tax_codes: tuple[TaxCode, ...] = ()
    accounts: tuple[Account, ...] = ()
    products: tuple[Product, ...] = ()
    linked_accounts: tuple[LinkedAccountDefault, ...] = ()

    _tax_codes_by_id: Mapping[str, TaxCode] = field(
        init=False, repr=False, compare=False
    )
    _accounts_by_id: Mapping[str, Account] = field(
        init=False, repr=False, compare=False
    )
    _products_by_id: Mapping[str, Product] = field(
        init=False, repr=False, compare=False
    )

    def __post_init__(self) -> None:
        object.__setattr__(self, "tax_codes", tuple(self.tax_codes))
        object.__setattr__(self, "accounts", tuple(self.accounts))
        object.__setattr__(self, "products", tuple(self.products))
        object.__setattr__(self, "linked_accounts", tuple(self.linked_accounts))
        object.__setattr__(self, "_tax_codes_by_id", _index("tax_code", self.tax_codes))
        object.__setattr__(self, "_accounts_by_id", _index("account", self.accounts))
        object.__setattr__(self, "_products_by_id", _index("product", self.products))

    def tax_code(self, tax_code_id: str | None) -> TaxCode | None:
        if tax_code_id is None:
            return None
        return self._tax_codes_by_id.get(tax_code_id)

    def account(self, account_id: str | None) -> Account | None:
        if account_id is None:
            return None
        return self._accounts_by_id.get(account_id)

    def product(self, product_id: str | None) -> Product | None:
        if product_id is None:
            return None
        return self._products_by_id.get(product_id)

    def linked_account_id(self, account_type: str) -> str | None:
        """First configured account for a linked-account type, if any."""
        for link in self.linked_accounts:
            if link.account_type == account_type and link.account_id:
                return link.account_id
        return None
