"""Quotation lifecycle operations (create, status, versioning, invoicing).

Every operation works inside the caller's session: it flushes but never
commits, so a multi-step change (header + items, supersede + new version,
invoice + items) lands atomically when the session owner commits, or not at
all. Quotation rows are updated with a compare-and-swap on ``row_version``.
"""

from __future__ import annotations

from collections.abc import Sequence
from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from typing import Any
from uuid import UUID, uuid4

import structlog
from sqlalchemy import func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from hvaccrm.activity.logger import (
    log_invoice_created,
    log_quote_approved,
    log_quote_created,
    log_quote_rejected,
    log_quote_sent,
)
from hvaccrm.config import TAX_BASE_QUOTE_TOTAL, QuotationConfig, get_config
from hvaccrm.db.models import (
    InvoiceItemModel,
    InvoiceModel,
    QuotationItemModel,
    QuotationModel,
)
from hvaccrm.models import (
    ConversionType,
    EmployeeRef,
    InvoiceStatus,
    QuotationChanges,
    QuotationCreate,
    QuotationStatus,
    QuoteToInvoiceConversion,
)
from hvaccrm.quotations.errors import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    StoreError,
    ValidationError,
)
from hvaccrm.quotations.repository import count_quote_families, version_number
from hvaccrm.quotations.state import OPEN_STATES, check_transition
from hvaccrm.quotations.totals import (
    HUNDRED,
    MILLI,
    QuotationTotals,
    compute_totals,
    round_money,
    round_quantity,
    to_decimal,
)

logger = structlog.get_logger(__name__)

# Header fields carried from one version to the next
_COPIED_FIELDS = (
    "quote_number",
    "project_id",
    "customer_id",
    "quote_title",
    "description",
    "scope_of_work",
    "terms_and_conditions",
    "notes",
    "discount_percentage",
    "tax_rate",
    "issue_date",
    "valid_until",
)

# Fields a version change may not null out
_REQUIRED_FIELDS = ("quote_title", "tax_rate", "discount_percentage", "issue_date")


def next_version(version: str | None) -> str:
    """``v<N>`` -> ``v<N+1>``; unparsable input is treated as v1."""
    return f"v{version_number(version) + 1}"


def _settings(settings: QuotationConfig | None) -> QuotationConfig:
    return settings if settings is not None else get_config().quotes


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _item_fields(item: Any) -> dict[str, Any]:
    """Descriptive fields of a line item (pydantic input, ORM row or dict)."""
    get = item.get if isinstance(item, dict) else lambda key, default=None: getattr(item, key, default)
    return {
        "description": get("description") or "",
        "unit": get("unit") or "piece",
        "category": get("category"),
        "notes": get("notes"),
    }


async def _flush(session: AsyncSession, operation: str) -> None:
    try:
        await session.flush()
    except SQLAlchemyError as exc:
        logger.error("store_failed", operation=operation, error=str(exc))
        raise StoreError(f"Failed to {operation}") from exc


async def _get_quotation(session: AsyncSession, quotation_id: UUID) -> QuotationModel:
    try:
        quotation = await session.get(QuotationModel, quotation_id)
    except SQLAlchemyError as exc:
        raise StoreError("Failed to load quotation") from exc
    if quotation is None:
        raise NotFoundError(f"Quotation {quotation_id} not found")
    return quotation


async def _compare_and_swap(
    session: AsyncSession,
    quotation: QuotationModel,
    seen_row_version: int,
    **values: Any,
) -> None:
    """Apply ``values`` only if the row is still at ``seen_row_version``.

    Raises:
        ConflictError: Row was changed by someone else
        StoreError: Database error
    """
    stmt = (
        update(QuotationModel)
        .where(
            QuotationModel.id == quotation.id,
            QuotationModel.row_version == seen_row_version,
        )
        .values(row_version=QuotationModel.row_version + 1, updated_at=_now(), **values)
        .execution_options(synchronize_session=False)
    )
    try:
        result = await session.execute(stmt)
    except SQLAlchemyError as exc:
        raise StoreError(f"Failed to update quotation {quotation.id}") from exc

    if result.rowcount != 1:
        raise ConflictError(
            f"Quotation {quotation.id} was modified concurrently (expected row_version {seen_row_version})"
        )

    await session.refresh(quotation, attribute_names=[*values, "row_version", "updated_at"])


async def _next_quote_number(session: AsyncSession, prefix: str) -> str:
    n = await count_quote_families(session) + 1
    while True:
        candidate = f"{prefix}{n:03d}"
        exists = await session.execute(
            select(QuotationModel.id).where(QuotationModel.quote_number == candidate).limit(1)
        )
        if exists.first() is None:
            return candidate
        n += 1


async def _next_invoice_number(session: AsyncSession, prefix: str) -> str:
    n = (await session.execute(select(func.count(InvoiceModel.id)))).scalar_one() + 1
    while True:
        candidate = f"{prefix}-{n:05d}"
        exists = await session.execute(
            select(InvoiceModel.id).where(InvoiceModel.invoice_number == candidate).limit(1)
        )
        if exists.first() is None:
            return candidate
        n += 1


async def _insert_quotation(
    session: AsyncSession,
    header: dict[str, Any],
    items: Sequence[Any],
    totals: QuotationTotals,
    actor: EmployeeRef,
    settings: QuotationConfig,
    version: str = "v1",
    parent_quote_id: UUID | None = None,
    quotation_id: UUID | None = None,
) -> QuotationModel:
    quote_number = header.get("quote_number")
    if quote_number and parent_quote_id is None:
        try:
            taken = await session.execute(
                select(QuotationModel.id).where(QuotationModel.quote_number == quote_number).limit(1)
            )
        except SQLAlchemyError as exc:
            raise StoreError("Failed to check quote number") from exc
        if taken.first() is not None:
            raise ValidationError(
                f"Quote number {quote_number} is already in use; create a new version instead"
            )
    elif not quote_number:
        try:
            quote_number = await _next_quote_number(session, settings.quote_number_prefix)
        except SQLAlchemyError as exc:
            raise StoreError("Failed to allocate quote number") from exc

    quotation = QuotationModel(
        id=quotation_id or uuid4(),
        quote_number=quote_number,
        version=version,
        is_latest_version=True,
        parent_quote_id=parent_quote_id,
        row_version=1,
        status=QuotationStatus.DRAFT.value,
        project_id=header.get("project_id"),
        customer_id=header["customer_id"],
        created_by=actor.id,
        quote_title=header["quote_title"],
        description=header.get("description"),
        scope_of_work=header.get("scope_of_work"),
        terms_and_conditions=header.get("terms_and_conditions"),
        notes=header.get("notes"),
        subtotal=totals.subtotal,
        discount_percentage=to_decimal(header.get("discount_percentage") or 0, "discount_percentage"),
        discount_amount=totals.discount_amount,
        tax_rate=to_decimal(header["tax_rate"], "tax_rate"),
        tax_amount=totals.tax_amount,
        total_amount=totals.total_amount,
        issue_date=header.get("issue_date") or date.today(),
        valid_until=header.get("valid_until"),
        sent_date=None,
        approved_date=None,
        items=[
            QuotationItemModel(
                quantity=line.quantity,
                unit_price=line.unit_price,
                total_amount=line.total_amount,
                sort_order=index,
                **_item_fields(item),
            )
            for index, (item, line) in enumerate(zip(items, totals.lines))
        ],
    )
    session.add(quotation)
    await _flush(session, "create quotation")

    await log_quote_created(session, quotation, actor)

    logger.info(
        "quotation_created",
        quotation_id=str(quotation.id),
        quote_number=quotation.quote_number,
        version=quotation.version,
        items=len(quotation.items),
        total_amount=str(quotation.total_amount),
        created_by=str(actor.id),
    )
    return quotation


async def create_quotation(
    session: AsyncSession,
    data: QuotationCreate,
    items: Sequence[Any],
    actor: EmployeeRef,
    settings: QuotationConfig | None = None,
) -> QuotationModel:
    """Create a draft ``v1`` quotation with its line items.

    Args:
        session: Session owning the unit of work (flushed, not committed)
        data: Header fields
        items: Line items (QuotationItemInput, dicts or item rows)
        actor: Employee creating the quotation

    Returns:
        The new quotation, items loaded

    Raises:
        ValidationError: Empty items or an item violates its constraints, or
            ``quote_number`` already belongs to a quotation family
        StoreError: Persistence failed
    """
    settings = _settings(settings)
    header = data.model_dump()
    if header.get("tax_rate") is None:
        header["tax_rate"] = settings.default_tax_rate

    totals = compute_totals(items, header["discount_percentage"], header["tax_rate"])
    return await _insert_quotation(session, header, items, totals, actor, settings)


async def update_status(
    session: AsyncSession,
    quotation_id: UUID,
    new_status: QuotationStatus | str,
    actor: EmployeeRef,
    notes: str | None = None,
    expected_row_version: int | None = None,
    settings: QuotationConfig | None = None,
    as_of: date | None = None,
) -> QuotationModel:
    """Move a quotation to ``new_status``.

    Stamps ``sent_date`` / ``approved_date`` and records the matching project
    activity. ``notes`` is used as the rejection reason. A quotation can only
    expire once its ``valid_until`` is before ``as_of`` (default today).

    Raises:
        ValidationError: Unknown status value
        NotFoundError: No quotation with this id
        InvalidStateError: Transition not allowed, or expiry before the validity date
        ConflictError: Row changed since ``expected_row_version`` (or concurrently)
        StoreError: Persistence failed
    """
    settings = _settings(settings)
    try:
        target = QuotationStatus(new_status)
    except ValueError as exc:
        raise ValidationError(f"Unknown quotation status {new_status!r}") from exc

    quotation = await _get_quotation(session, quotation_id)
    seen = quotation.row_version
    if expected_row_version is not None and expected_row_version != seen:
        raise ConflictError(
            f"Quotation {quotation_id} is at row_version {seen}, expected {expected_row_version}"
        )

    previous = quotation.status
    check_transition(previous, target, strict=settings.strict_transitions)
    if target == QuotationStatus.EXPIRED:
        as_of = as_of or date.today()
        if quotation.valid_until is None or quotation.valid_until >= as_of:
            raise InvalidStateError(
                f"Quotation {quotation.quote_number} is valid until {quotation.valid_until}; "
                f"it cannot expire as of {as_of}"
            )

    values: dict[str, Any] = {"status": target.value}
    if target == QuotationStatus.SENT:
        values["sent_date"] = _now()
    elif target == QuotationStatus.APPROVED:
        values["approved_date"] = _now()

    await _compare_and_swap(session, quotation, seen, **values)

    if target == QuotationStatus.SENT:
        await log_quote_sent(session, quotation, actor)
    elif target == QuotationStatus.APPROVED:
        await log_quote_approved(session, quotation, actor)
    elif target == QuotationStatus.REJECTED:
        await log_quote_rejected(session, quotation, actor, reason=notes)

    logger.info(
        "quotation_status_changed",
        quotation_id=str(quotation.id),
        quote_number=quotation.quote_number,
        from_status=previous,
        to_status=target.value,
        performed_by=str(actor.id),
    )
    return quotation


async def create_version(
    session: AsyncSession,
    original_id: UUID,
    changes: QuotationChanges | None,
    actor: EmployeeRef,
    settings: QuotationConfig | None = None,
) -> QuotationModel:
    """Supersede a quotation with a new draft version.

    The original becomes ``superseded`` and loses ``is_latest_version`` in a
    single compare-and-swap; the new row copies its header (overridden by
    ``changes``) and items, gets version ``v<N+1>`` and status ``draft``.

    Raises:
        NotFoundError: Original does not exist
        InvalidStateError: Original is already superseded or not the latest version
        ConflictError: Another writer versioned or updated the original first
        ValidationError: Changes produce invalid totals
        StoreError: Persistence failed
    """
    settings = _settings(settings)
    original = await _get_quotation(session, original_id)

    if original.status == QuotationStatus.SUPERSEDED.value or not original.is_latest_version:
        raise InvalidStateError(
            f"Quotation {original.quote_number} {original.version} is not the latest version"
        )

    header = {name: getattr(original, name) for name in _COPIED_FIELDS}
    if changes is not None:
        overrides = changes.model_dump(exclude_unset=True)
        for name in _REQUIRED_FIELDS:
            if overrides.get(name, header[name]) is None:
                overrides.pop(name, None)
        header.update(overrides)

    items = [
        {
            "description": item.description,
            "quantity": item.quantity,
            "unit_price": item.unit_price,
            "unit": item.unit,
            "category": item.category,
            "notes": item.notes,
        }
        for item in original.items
    ]
    totals = compute_totals(items, header["discount_percentage"], header["tax_rate"])

    new_id = uuid4()
    new_version = next_version(original.version)

    await _compare_and_swap(
        session,
        original,
        original.row_version,
        status=QuotationStatus.SUPERSEDED.value,
        is_latest_version=False,
        superseded_by=new_id,
    )

    quotation = await _insert_quotation(
        session,
        header,
        items,
        totals,
        actor,
        settings,
        version=new_version,
        parent_quote_id=original.id,
        quotation_id=new_id,
    )

    logger.info(
        "quotation_versioned",
        quote_number=quotation.quote_number,
        superseded_id=str(original.id),
        quotation_id=str(quotation.id),
        from_version=original.version,
        to_version=new_version,
    )
    return quotation


async def convert_to_invoice(
    session: AsyncSession,
    conversion: QuoteToInvoiceConversion,
    actor: EmployeeRef,
    settings: QuotationConfig | None = None,
) -> UUID:
    """Create a draft invoice from an approved quotation.

    Partial conversions scale the amount and every line's quantity and total
    by ``percentage / 100``; unit prices are unchanged. Tax is applied at the
    quotation's rate to the configured base (``invoice_tax_base``).

    Returns:
        The new invoice id

    Raises:
        NotFoundError: Quotation does not exist
        InvalidStateError: Quotation is not approved
        ValidationError: Partial conversion without a percentage in (0, 100], or
            one that scales a line quantity below 0.001
        StoreError: Persistence failed
    """
    settings = _settings(settings)

    quotation = await _get_quotation(session, conversion.quote_id)
    if quotation.status != QuotationStatus.APPROVED.value:
        raise InvalidStateError(
            f"Quotation {quotation.quote_number} must be approved to convert to invoice "
            f"(status is {quotation.status})"
        )

    if conversion.invoice_type == ConversionType.PARTIAL:
        if conversion.percentage is None:
            raise ValidationError("percentage is required for a partial invoice")
        percentage = to_decimal(conversion.percentage, "percentage")
        if not Decimal("0") < percentage <= HUNDRED:
            raise ValidationError("percentage must be greater than 0 and at most 100")
    else:
        percentage = HUNDRED
    partial = conversion.invoice_type == ConversionType.PARTIAL
    factor = percentage / HUNDRED

    if partial:
        for item in quotation.items:
            if item.quantity * factor < MILLI:
                raise ValidationError(
                    f"percentage {percentage} scales item {item.sort_order + 1} quantity "
                    f"{item.quantity} below {MILLI}"
                )

    if settings.invoice_tax_base == TAX_BASE_QUOTE_TOTAL:
        base_amount = quotation.total_amount
    else:
        base_amount = quotation.subtotal - quotation.discount_amount

    subtotal = round_money(base_amount * factor)
    tax_amount = round_money(subtotal * quotation.tax_rate / HUNDRED)
    total_amount = subtotal + tax_amount
    today = date.today()

    try:
        invoice_number = await _next_invoice_number(session, settings.invoice_number_prefix)
    except SQLAlchemyError as exc:
        raise StoreError("Failed to allocate invoice number") from exc

    invoice = InvoiceModel(
        invoice_number=invoice_number,
        invoice_type="invoice",
        quote_id=quotation.id,
        quote_version=quotation.version,
        project_id=quotation.project_id,
        customer_id=quotation.customer_id,
        created_by=actor.id,
        status=InvoiceStatus.DRAFT.value,
        subtotal=subtotal,
        discount_percentage=Decimal("0"),
        discount_amount=Decimal("0"),
        tax_rate=quotation.tax_rate,
        tax_amount=tax_amount,
        total_amount=total_amount,
        amount_paid=Decimal("0"),
        balance_due=total_amount,
        issue_date=today,
        due_date=conversion.due_date or today + timedelta(days=settings.invoice_due_days),
        payment_terms=conversion.payment_terms or settings.invoice_payment_terms,
        notes=conversion.notes,
        items=[
            InvoiceItemModel(
                description=item.description,
                quantity=round_quantity(item.quantity * factor) if partial else item.quantity,
                unit=item.unit,
                unit_price=item.unit_price,
                total_amount=round_money(item.total_amount * factor) if partial else item.total_amount,
                category=item.category,
                notes=item.notes,
                sort_order=item.sort_order,
            )
            for item in quotation.items
        ],
    )
    session.add(invoice)
    await _flush(session, "create invoice")

    await log_invoice_created(session, invoice, actor)

    logger.info(
        "quotation_converted",
        quotation_id=str(quotation.id),
        invoice_id=str(invoice.id),
        invoice_number=invoice.invoice_number,
        invoice_type=conversion.invoice_type.value,
        percentage=str(percentage),
        total_amount=str(total_amount),
    )
    return invoice.id


async def expire_quotations(
    session: AsyncSession,
    actor: EmployeeRef,
    today: date | None = None,
    settings: QuotationConfig | None = None,
) -> list[UUID]:
    """Expire sent/viewed quotations whose ``valid_until`` has passed.

    Returns:
        Ids of the quotations that were expired
    """
    today = today or date.today()
    stmt = select(QuotationModel.id).where(
        QuotationModel.is_latest_version.is_(True),
        QuotationModel.status.in_([status.value for status in OPEN_STATES]),
        QuotationModel.valid_until.is_not(None),
        QuotationModel.valid_until < today,
    )
    try:
        candidate_ids = list((await session.execute(stmt)).scalars().all())
    except SQLAlchemyError as exc:
        raise StoreError("Failed to query expirable quotations") from exc

    expired: list[UUID] = []
    for quotation_id in candidate_ids:
        await update_status(
            session, quotation_id, QuotationStatus.EXPIRED, actor, settings=settings, as_of=today
        )
        expired.append(quotation_id)

    if expired:
        logger.info("quotations_expired", count=len(expired), as_of=today.isoformat())
    return expired
