"""
Module: invoice_engines.posting
Responsibility:
    Project invoice totals and line results onto a double-entry posting
    preview: which accounts are debited and credited, and by how much.
    Also lists the account slots involved so a caller can offer
    per-role overrides.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Runs strictly after every LineResult and the InvoiceTotals for the
    current snapshot are available.

Invariants enforced:
    - Effective account = override ?? default for every role.
    - Income entries sum exactly to the invoice subtotal; the group with
      the largest subtotal absorbs the rounding residual.
    - COGS and inventory entries are emitted in pairs with equal amounts.
    - Sum of debits == sum of credits whenever every role resolves.
    - Entries are ordered debits first, then credits, each by account name.

Failure modes:
    - An unresolvable account omits its entry and records an
      ``*_account_unresolved`` warning. ``PostingPreview.require_complete``
      and ``require_balanced`` raise typed errors for callers that must
      gate submission.
    - ValueError if ``lines`` and ``line_results`` differ in length or order.

Audit relevance:
    The preview is display-only. The authoritative posting happens
    server-side at invoice approval and may differ from this projection.
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from invoice_kernel.domain.currency import CurrencyRegistry
from invoice_kernel.domain.reference_snapshot import (
    DISCOUNTS_ALLOWED_LINK,
    RECEIVABLES_LINK,
    ReferenceData,
)
from invoice_kernel.domain.settings import DEFAULT_SETTINGS, EngineSettings
from invoice_kernel.domain.types import (
    Account,
    AccountNature,
    AccountOverrides,
    AccountRole,
    EngineWarning,
    InvoiceTotals,
    Line,
    LineResult,
    PostingEntry,
    Product,
    WarningCode,
)
from invoice_kernel.domain.values import ZERO, quantize_to
from invoice_kernel.exceptions import (
    IncompleteConfigurationError,
    UnbalancedPreviewError,
)
from invoice_kernel.logging_config import get_logger
from invoice_engines.tracer import traced_engine

logger = get_logger("engines.posting")

# Debits and credits are compared at this tolerance. Full-precision
# Decimal sums only diverge past the 28th significant digit.
BALANCE_TOLERANCE = Decimal("1e-9")

_UNRESOLVED_CODES: dict[AccountRole, WarningCode] = {
    AccountRole.RECEIVABLE: WarningCode.RECEIVABLE_ACCOUNT_UNRESOLVED,
    AccountRole.DISCOUNT_ALLOWED: WarningCode.DISCOUNT_ACCOUNT_UNRESOLVED,
    AccountRole.INCOME: WarningCode.INCOME_ACCOUNT_UNRESOLVED,
    AccountRole.COGS: WarningCode.COGS_ACCOUNT_UNRESOLVED,
    AccountRole.INVENTORY: WarningCode.INVENTORY_ACCOUNT_UNRESOLVED,
    AccountRole.TAX_PAYABLE: WarningCode.TAX_ACCOUNT_UNRESOLVED,
    AccountRole.WHT_RECEIVABLE: WarningCode.WHT_ACCOUNT_UNRESOLVED,
}

_ROLE_NATURE: dict[AccountRole, AccountNature] = {
    AccountRole.RECEIVABLE: AccountNature.DEBIT,
    AccountRole.DISCOUNT_ALLOWED: AccountNature.DEBIT,
    AccountRole.INCOME: AccountNature.CREDIT,
    AccountRole.COGS: AccountNature.DEBIT,
    AccountRole.INVENTORY: AccountNature.CREDIT,
    AccountRole.TAX_PAYABLE: AccountNature.CREDIT,
    AccountRole.WHT_RECEIVABLE: AccountNature.DEBIT,
}


@dataclass(frozen=True)
class PostingPreview:
    """
    Ordered posting entries plus the configuration gaps found while
    building them.
    """

    entries: tuple[PostingEntry, ...]
    warnings: tuple[EngineWarning, ...] = ()

    @property
    def total_debits(self) -> Decimal:
        return sum(
            (e.amount for e in self.entries if e.nature is AccountNature.DEBIT),
            ZERO,
        )

    @property
    def total_credits(self) -> Decimal:
        return sum(
            (e.amount for e in self.entries if e.nature is AccountNature.CREDIT),
            ZERO,
        )

    @property
    def is_balanced(self) -> bool:
        return abs(self.total_debits - self.total_credits) <= BALANCE_TOLERANCE

    @property
    def is_complete(self) -> bool:
        """True when no entry was omitted for lack of an account."""
        return not any(w.code.is_configuration_gap for w in self.warnings)

    def entries_for(self, role: AccountRole) -> tuple[PostingEntry, ...]:
        return tuple(e for e in self.entries if e.role is role)

    def require_balanced(self) -> None:
        """Raise UnbalancedPreviewError unless debits equal credits."""
        if not self.is_balanced:
            raise UnbalancedPreviewError(self.total_debits, self.total_credits)

    def require_complete(self) -> None:
        """Raise IncompleteConfigurationError if any account role did not resolve."""
        gaps = sorted({w.code.value for w in self.warnings if w.code.is_configuration_gap})
        if gaps:
            raise IncompleteConfigurationError(gaps)


@dataclass(frozen=True)
class AccountSlot:
    """
    One account involved in posting, as offered to the user for override.

    ``default_account_id`` is what configuration selects; ``account`` is
    the effective account after overrides, or None when it does not
    resolve.
    """

    role: AccountRole
    default_account_id: str | None
    account: Account | None
    nature: AccountNature
    description: str

    @property
    def is_resolved(self) -> bool:
        return self.account is not None


class AccountResolver:
    """
    Default-then-override account resolution against a reference snapshot.

    Receivable default: the customer's receivable account, else the
    linked ``receivables`` account. Discount-allowed default: the linked
    ``discounts_allowed`` account. Per-line roles default from the
    product's category, then the product itself.
    """

    def __init__(
        self,
        reference: ReferenceData,
        overrides: AccountOverrides,
        customer_receivable_account_id: str | None = None,
    ):
        self._reference = reference
        self._overrides = overrides
        self._customer_receivable_account_id = customer_receivable_account_id

    def default_id(self, role: AccountRole, product: Product | None = None) -> str | None:
        match role:
            case AccountRole.RECEIVABLE:
                return (
                    self._customer_receivable_account_id
                    or self._reference.linked_account_id(RECEIVABLES_LINK)
                )
            case AccountRole.DISCOUNT_ALLOWED:
                return self._reference.linked_account_id(DISCOUNTS_ALLOWED_LINK)
            case AccountRole.INCOME:
                return product.default_income_account_id if product else None
            case AccountRole.COGS:
                return product.default_cogs_account_id if product else None
            case AccountRole.INVENTORY:
                return product.default_inventory_account_id if product else None
            case _:
                raise ValueError(f"Role {role} is resolved through tax codes")

    def resolve(self, role: AccountRole, default_id: str | None) -> Account | None:
        """Effective account for a role and default id, if it exists."""
        return self._reference.account(
            self._overrides.effective_account_id(role, default_id)
        )

    def resolve_for(self, role: AccountRole, product: Product | None = None) -> Account | None:
        return self.resolve(role, self.default_id(role, product))

    def tax_account(self, role: AccountRole, tax_code_id: str | None) -> Account | None:
        """Effective posting account for a sales tax or WHT code."""
        tax_code = self._reference.tax_code(tax_code_id)
        if tax_code is None or not tax_code.posting_account_id:
            return None
        return self.resolve(role, tax_code.posting_account_id)


def _entry(
    account: Account,
    role: AccountRole,
    amount: Decimal,
    description: str,
) -> PostingEntry:
    return PostingEntry(
        account_id=account.id,
        account_code=account.code,
        account_name=account.name,
        nature=_ROLE_NATURE[role],
        amount=amount,
        description=description,
        role=role,
    )


def _gap(role: AccountRole, message: str, line_id: str | None = None) -> EngineWarning:
    return EngineWarning(
        code=_UNRESOLVED_CODES[role],
        message=message,
        line_id=line_id,
    )


def distribute_proportionally(
    amount: Decimal,
    weights: Sequence[Decimal],
    quantum: Decimal | None = None,
    rounding: str | None = None,
) -> list[Decimal]:
    """
    Split ``amount`` across ``weights`` so the parts sum exactly to ``amount``.

    Each part is ``weight / total_weight * amount``, quantized when a
    quantum is given. The largest weight receives the remainder. Zero
    total weight yields all zeros.
    """
    total_weight = sum(weights, ZERO)
    if not weights or total_weight <= ZERO:
        return [ZERO for _ in weights]

    rounding_index = max(range(len(weights)), key=lambda i: weights[i])

    def _split(q: Decimal | None) -> list[Decimal]:
        parts: list[Decimal] = []
        allocated = ZERO
        for i, weight in enumerate(weights):
            if i == rounding_index:
                parts.append(ZERO)
                continue
            part = weight / total_weight * amount
            if q is not None:
                part = quantize_to(part, q, rounding)
            parts.append(part)
            allocated += part
        parts[rounding_index] = amount - allocated
        return parts

    parts = _split(quantum)
    if quantum is not None and parts[rounding_index] < ZERO:
        # Rounding of the other parts overshot a tiny amount
        parts = _split(None)
    return parts


class PostingPreviewBuilder:
    """
    Build the posting preview for one invoice snapshot.

    Contract:
        Pure function of lines, their results, the aggregated totals, the
        reference snapshot and the caller's overrides.
    Guarantees:
        - Debit-first, name-ordered entries.
        - Balanced whenever ``PostingPreview.is_complete`` is True.
    Non-goals:
        - Does not persist entries or reserve ledger state.
    """

    def __init__(self, settings: EngineSettings = DEFAULT_SETTINGS):
        self._settings = settings

    @traced_engine("posting", "1.0", fingerprint_fields=("totals", "overrides"))
    def build(
        self,
        *,
        lines: Sequence[Line],
        line_results: Sequence[LineResult],
        totals: InvoiceTotals,
        reference: ReferenceData,
        overrides: AccountOverrides | None = None,
        customer_receivable_account_id: str | None = None,
        currency: str | None = None,
    ) -> PostingPreview:
        """
        Build the ordered posting preview.

        Args:
            lines: Line inputs, in the same order as ``line_results``
            line_results: Results from LineCalculator for this snapshot
            totals: InvoiceAggregator output for the same results
            reference: Accounts, products, tax codes, linked defaults
            overrides: User-selected account overrides
            customer_receivable_account_id: Customer's default receivable
            currency: Invoice currency code, for income rounding precision
        """
        t0 = time.monotonic()
        if len(lines) != len(line_results):
            raise ValueError(
                f"lines ({len(lines)}) and line_results ({len(line_results)}) differ in length"
            )
        for line, result in zip(lines, line_results):
            if line.line_id != result.line_id:
                raise ValueError(
                    f"Line {line.line_id} paired with result for {result.line_id}"
                )

        resolver = AccountResolver(
            reference, overrides or AccountOverrides(), customer_receivable_account_id
        )
        pairs = list(zip(lines, line_results))
        entries: list[PostingEntry] = []
        warnings: list[EngineWarning] = []

        self._receivable(resolver, totals, entries, warnings)
        self._income(resolver, reference, pairs, totals, currency, entries, warnings)
        self._cost_of_sales(resolver, reference, pairs, entries, warnings)
        self._discount(resolver, totals, entries, warnings)
        self._tax(resolver, pairs, AccountRole.TAX_PAYABLE, entries, warnings)
        self._tax(resolver, pairs, AccountRole.WHT_RECEIVABLE, entries, warnings)

        entries.sort(key=lambda e: (e.nature is not AccountNature.DEBIT, e.account_name))
        preview = PostingPreview(entries=tuple(entries), warnings=tuple(warnings))

        for warning in warnings:
            event = (
                "account_unresolved" if warning.code.is_configuration_gap else "product_not_found"
            )
            logger.warning(event, extra={
                "warning_code": warning.code.value,
                "line_id": warning.line_id,
                "detail": warning.message,
            })

        logger.info("posting_preview_built", extra={
            "entry_count": len(entries),
            "total_debits": str(preview.total_debits),
            "total_credits": str(preview.total_credits),
            "is_balanced": preview.is_balanced,
            "is_complete": preview.is_complete,
            "duration_ms": round((time.monotonic() - t0) * 1000, 2),
        })
        return preview

    # -- steps ---------------------------------------------------------------

    def _receivable(
        self,
        resolver: AccountResolver,
        totals: InvoiceTotals,
        entries: list[PostingEntry],
        warnings: list[EngineWarning],
    ) -> None:
        account = resolver.resolve_for(AccountRole.RECEIVABLE)
        if account is None:
            warnings.append(_gap(AccountRole.RECEIVABLE, "No receivable account selected"))
            return
        amount = totals.total if totals.total > ZERO else ZERO
        entries.append(_entry(
            account, AccountRole.RECEIVABLE, amount,
            self._settings.describe(AccountRole.RECEIVABLE),
        ))

    def _income(
        self,
        resolver: AccountResolver,
        reference: ReferenceData,
        pairs: list[tuple[Line, LineResult]],
        totals: InvoiceTotals,
        currency: str | None,
        entries: list[PostingEntry],
        warnings: list[EngineWarning],
    ) -> None:
        groups: dict[str, tuple[Account, Decimal]] = {}
        for line, result in pairs:
            product = reference.product(line.product_id)
            if product is None:
                warnings.append(EngineWarning(
                    code=WarningCode.PRODUCT_NOT_FOUND,
                    message=f"Product {line.product_id} not found; line has no posting accounts",
                    line_id=line.line_id,
                ))
                continue
            account = resolver.resolve_for(AccountRole.INCOME, product)
            if account is None:
                warnings.append(_gap(
                    AccountRole.INCOME,
                    f"No income account for product {product.id}; "
                    "its revenue is spread over the other income accounts",
                    line.line_id,
                ))
                continue
            _, running = groups.get(account.id, (account, ZERO))
            groups[account.id] = (account, running + result.line_subtotal)

        if not groups:
            return

        accounts = [account for account, _ in groups.values()]
        weights = [weight for _, weight in groups.values()]
        if totals.subtotal > ZERO:
            amounts = distribute_proportionally(
                totals.subtotal,
                weights,
                quantum=CurrencyRegistry.get_quantum(currency),
                rounding=self._settings.rounding,
            )
        else:
            amounts = [ZERO for _ in weights]

        description = self._settings.describe(AccountRole.INCOME)
        for account, amount in zip(accounts, amounts):
            entries.append(_entry(account, AccountRole.INCOME, amount, description))

    def _cost_of_sales(
        self,
        resolver: AccountResolver,
        reference: ReferenceData,
        pairs: list[tuple[Line, LineResult]],
        entries: list[PostingEntry],
        warnings: list[EngineWarning],
    ) -> None:
        for line, result in pairs:
            product = reference.product(line.product_id)
            if product is None or self._settings.is_service(product.product_type):
                continue

            cogs_amount = result.quantity * product.average_cost
            if cogs_amount <= ZERO:
                continue

            cogs_account = resolver.resolve_for(AccountRole.COGS, product)
            inventory_account = resolver.resolve_for(AccountRole.INVENTORY, product)
            if cogs_account is None or inventory_account is None:
                for role, account in (
                    (AccountRole.COGS, cogs_account),
                    (AccountRole.INVENTORY, inventory_account),
                ):
                    if account is None:
                        warnings.append(_gap(
                            role,
                            f"No {role.value} account for product {product.id}; "
                            "cost of sales omitted",
                            line.line_id,
                        ))
                continue

            label = product.name or "Product"
            entries.append(_entry(
                cogs_account, AccountRole.COGS, cogs_amount,
                f"{self._settings.describe(AccountRole.COGS)} - {label}",
            ))
            entries.append(_entry(
                inventory_account, AccountRole.INVENTORY, cogs_amount,
                f"{self._settings.describe(AccountRole.INVENTORY)} - {label}",
            ))

    def _discount(
        self,
        resolver: AccountResolver,
        totals: InvoiceTotals,
        entries: list[PostingEntry],
        warnings: list[EngineWarning],
    ) -> None:
        amount = totals.total_discount if totals.total_discount > ZERO else ZERO
        account = resolver.resolve_for(AccountRole.DISCOUNT_ALLOWED)
        if account is None:
            if amount > ZERO:
                warnings.append(_gap(
                    AccountRole.DISCOUNT_ALLOWED,
                    "Invoice has discounts but no discount-allowed account",
                ))
            return
        entries.append(_entry(
            account, AccountRole.DISCOUNT_ALLOWED, amount,
            self._settings.describe(AccountRole.DISCOUNT_ALLOWED),
        ))

    def _tax(
        self,
        resolver: AccountResolver,
        pairs: list[tuple[Line, LineResult]],
        role: AccountRole,
        entries: list[PostingEntry],
        warnings: list[EngineWarning],
    ) -> None:
        groups: dict[str, tuple[Account, Decimal]] = {}
        for line, result in pairs:
            if role is AccountRole.TAX_PAYABLE:
                amount, tax_code_id = result.vat_amount, line.sales_tax_code_id
            else:
                amount, tax_code_id = result.wht_amount, line.wht_tax_code_id
            if amount <= ZERO:
                continue

            account = resolver.tax_account(role, tax_code_id)
            if account is None:
                warnings.append(_gap(
                    role,
                    f"No posting account for tax code {tax_code_id}",
                    line.line_id,
                ))
                continue
            _, running = groups.get(account.id, (account, ZERO))
            groups[account.id] = (account, running + amount)

        description = self._settings.describe(role)
        for account, amount in groups.values():
            entries.append(_entry(account, role, amount, description))

    # -- account slots -------------------------------------------------------

    def account_slots(
        self,
        *,
        lines: Sequence[Line],
        reference: ReferenceData,
        overrides: AccountOverrides | None = None,
        customer_receivable_account_id: str | None = None,
    ) -> tuple[AccountSlot, ...]:
        """
        Accounts involved in posting this invoice, one slot per role and
        default account. The receivable slot is always present.
        """
        resolver = AccountResolver(
            reference, overrides or AccountOverrides(), customer_receivable_account_id
        )
        slots: list[AccountSlot] = []
        seen: set[tuple[AccountRole, str]] = set()

        def add(role: AccountRole, default_id: str | None, account: Account | None) -> None:
            slots.append(AccountSlot(
                role=role,
                default_account_id=default_id,
                account=account,
                nature=_ROLE_NATURE[role],
                description=self._settings.describe(role),
            ))

        receivable_default = resolver.default_id(AccountRole.RECEIVABLE)
        add(
            AccountRole.RECEIVABLE,
            receivable_default,
            resolver.resolve(AccountRole.RECEIVABLE, receivable_default),
        )

        discount_default = resolver.default_id(AccountRole.DISCOUNT_ALLOWED)
        discount_account = resolver.resolve(AccountRole.DISCOUNT_ALLOWED, discount_default)
        if discount_account is not None:
            add(AccountRole.DISCOUNT_ALLOWED, discount_default, discount_account)

        products = [reference.product(line.product_id) for line in lines]
        for role in (AccountRole.INCOME, AccountRole.COGS, AccountRole.INVENTORY):
            for product in products:
                if product is None:
                    continue
                if role is not AccountRole.INCOME and self._settings.is_service(
                    product.product_type
                ):
                    continue
                default_id = resolver.default_id(role, product)
                if default_id is None or (role, default_id) in seen:
                    continue
                seen.add((role, default_id))
                if reference.account(default_id) is not None:
                    add(role, default_id, resolver.resolve(role, default_id))

        for role, attr, withholding in (
            (AccountRole.TAX_PAYABLE, "sales_tax_code_id", False),
            (AccountRole.WHT_RECEIVABLE, "wht_tax_code_id", True),
        ):
            for line in lines:
                tax_code = reference.tax_code(getattr(line, attr))
                if (
                    tax_code is None
                    or not tax_code.posting_account_id
                    or bool(tax_code.is_withholding) != withholding
                ):
                    continue
                default_id = tax_code.posting_account_id
                if (role, default_id) in seen:
                    continue
                seen.add((role, default_id))
                if reference.account(default_id) is not None:
                    add(role, default_id, resolver.resolve(role, default_id))

        return tuple(slots)


def list_account_slots(
    lines: Sequence[Line],
    reference: ReferenceData,
    overrides: AccountOverrides | None = None,
    customer_receivable_account_id: str | None = None,
    settings: EngineSettings = DEFAULT_SETTINGS,
) -> tuple[AccountSlot, ...]:
    """Accounts involved in posting ``lines``. See PostingPreviewBuilder.account_slots."""
    return PostingPreviewBuilder(settings).account_slots(
        lines=lines,
        reference=reference,
        overrides=overrides,
        customer_receivable_account_id=customer_receivable_account_id,
    )
