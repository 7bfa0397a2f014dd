"""
External channel booking import and sync.

Reservations finalized on a channel (Booking.com, Airbnb, ...) arrive already
confirmed and paid on the channel side. They go through the same calendar lock
and overlap check as direct bookings and carry the channel's commission split.

Idempotency on (source, external_id) is enforced by the
``uq_reservations_source_external_id`` constraint; the prior lookup only
produces a friendlier error that names the existing reservation.
"""

from __future__ import annotations

from decimal import Decimal
from math import ceil
from typing import Any, Optional, cast

import structlog
from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError

from booking_engine.db.readers import reservations as reservation_reader
from booking_engine.db.readers.properties import get_property
from booking_engine.db.writers.reservations import (
    insert_reservation,
    is_external_id_violation,
    is_overlap_violation,
    update_reservation_fields,
)
from booking_engine.db.writers.users import resolve_guest
from booking_engine.errors import (
    BadRequestError,
    BookingError,
    ConflictError,
    NotFoundError,
    ValidationError,
)
from booking_engine.metrics import external_imports, reservations_created
from booking_engine.models.enums import (
    BLOCKING_STATUSES,
    BookingSource,
    PaymentStatus,
    ReservationStatus,
)
from booking_engine.schemas.external_bookings import ExternalBookingPatch, ExternalBookingPayload
from booking_engine.services import state_machine
from booking_engine.services.availability import assert_available, validate_stay_dates
from booking_engine.services.pricing import ZERO, commission_split, round_money, to_decimal
from booking_engine.utils.datetime import utc_now

logger = structlog.get_logger(__name__)

MAX_PAGE_SIZE = 100


def _duplicate_error(source: str, external_id: str, existing_id: Optional[str]) -> ConflictError:
    return ConflictError(
        f"Booking from {source} with external ID {external_id!r} already exists"
        + (f" (internal ID: {existing_id})" if existing_id else ""),
        source=source,
        external_id=external_id,
        existing_reservation_id=existing_id,
    )


def import_booking(engine: Engine, payload: ExternalBookingPayload) -> dict[str, Any]:
    """
    Import a reservation made on an external channel as CONFIRMED.

    Args:
        engine: SQLAlchemy engine
        payload: Validated channel booking

    Returns:
        dict[str, Any]: The stored reservation row

    Raises:
        ValidationError: DIRECT source, OTHER without a platform name, or bad dates
        ConflictError: (source, external_id) was already imported; details
            carry ``existing_reservation_id``
        NotFoundError: Unknown property
        BadRequestError: Dates clash with a held reservation; details carry
            ``conflicting_reservation_ids``
    """
    source = payload.source.value
    if payload.source == BookingSource.DIRECT:
        raise ValidationError("Direct bookings cannot be imported", source=source)
    if payload.source == BookingSource.OTHER and not payload.external_platform_name:
        raise ValidationError("external_platform_name is required when source is OTHER")
    validate_stay_dates(payload.check_in, payload.check_out)

    try:
        with engine.connect() as conn:
            existing = reservation_reader.find_by_external_id(conn, source, payload.external_id)
        if existing is not None:
            raise _duplicate_error(source, payload.external_id, existing["id"])

        guest = resolve_guest(engine, payload.guest_email, payload.guest_name, payload.guest_phone)

        with engine.begin() as conn:
            property_ = get_property(conn, payload.property_id)
            if property_ is None:
                raise NotFoundError("Property not found", property_id=payload.property_id)

            assert_available(
                conn,
                payload.property_id,
                payload.check_in,
                payload.check_out,
                error_cls=BadRequestError,
            )

            split = commission_split(
                payload.total_price,
                payload.source,
                explicit_rate=payload.commission_rate,
                explicit_amount=payload.commission_amount,
            )
            reservation_id = insert_reservation(
                conn,
                {
                    "property_id": payload.property_id,
                    "guest_id": guest["id"],
                    "check_in": payload.check_in,
                    "check_out": payload.check_out,
                    "guest_count": payload.guest_count,
                    "guest_name": payload.guest_name,
                    "guest_email": guest["email"],
                    "guest_phone": payload.guest_phone,
                    "special_requests": payload.special_requests,
                    "status": ReservationStatus.CONFIRMED.value,
                    "payment_status": PaymentStatus.COMPLETED.value,
                    "base_price": round_money(
                        to_decimal(payload.base_price if payload.base_price is not None else payload.total_price)
                    ),
                    "cleaning_fee": round_money(to_decimal(payload.cleaning_fee)),
                    "total_price": round_money(to_decimal(payload.total_price)),
                    "currency": payload.currency or property_["currency"],
                    "source": source,
                    "external_id": payload.external_id,
                    "external_platform_name": payload.external_platform_name,
                    "external_guest_id": payload.external_guest_id,
                    "ical_uid": payload.ical_uid,
                    "external_data": payload.external_data or {},
                    "commission_rate": split.commission_rate,
                    "commission_amount": split.commission_amount,
                    "net_revenue": split.net_revenue,
                    "last_synced_at": utc_now(),
                },
            )
            reservation = cast(dict[str, Any], reservation_reader.get_reservation(conn, reservation_id))
    except IntegrityError as exc:
        if is_external_id_violation(exc):
            with engine.connect() as conn:
                existing = reservation_reader.find_by_external_id(conn, source, payload.external_id)
            external_imports.labels(source=source, result="duplicate").inc()
            raise _duplicate_error(
                source, payload.external_id, existing["id"] if existing else None
            ) from exc
        if is_overlap_violation(exc):
            external_imports.labels(source=source, result="date_clash").inc()
            raise BadRequestError(
                "Property is not available for the selected dates",
                property_id=payload.property_id,
            ) from exc
        external_imports.labels(source=source, result="error").inc()
        raise
    except ConflictError:
        external_imports.labels(source=source, result="duplicate").inc()
        raise
    except BadRequestError:
        external_imports.labels(source=source, result="date_clash").inc()
        raise
    except BookingError:
        external_imports.labels(source=source, result="error").inc()
        raise

    external_imports.labels(source=source, result="imported").inc()
    reservations_created.labels(source=source, status=ReservationStatus.CONFIRMED.value).inc()
    logger.info(
        "external_booking_imported",
        source=source,
        external_id=payload.external_id,
        reservation_id=reservation_id,
        property_id=payload.property_id,
    )
    return reservation


def sync_booking(engine: Engine, reservation_id: str, patch: ExternalBookingPatch) -> dict[str, Any]:
    """
    Apply a change reported by the channel to an imported reservation.

    Date changes re-run the overlap check under the calendar lock, ignoring
    the reservation itself. Price or commission changes recompute the split.
    A status in the patch goes through the state machine (e.g. a cancellation
    made on the channel).

    Args:
        engine: SQLAlchemy engine
        reservation_id: Internal reservation id
        patch: Fields to change

    Returns:
        dict[str, Any]: The updated reservation row

    Raises:
        NotFoundError: Unknown reservation
        BadRequestError: Reservation is DIRECT, or new dates clash
        ValidationError: Bad dates
        InvalidTransitionError: Status change not allowed from the current status
    """
    data = patch.model_dump(exclude_unset=True)
    target_status = data.pop("status", None)
    reason = data.pop("cancellation_reason", None)

    with engine.begin() as conn:
        existing = reservation_reader.get_reservation(conn, reservation_id)
        if existing is None:
            raise NotFoundError("Reservation not found", reservation_id=reservation_id)
        if existing["source"] == BookingSource.DIRECT.value:
            raise BadRequestError(
                "Direct bookings cannot be synced from a channel", reservation_id=reservation_id
            )

        check_in = data.get("check_in") or existing["check_in"]
        check_out = data.get("check_out") or existing["check_out"]
        if "check_in" in data or "check_out" in data:
            validate_stay_dates(check_in, check_out)
            resulting = ReservationStatus(target_status or existing["status"])
            if resulting in BLOCKING_STATUSES:
                try:
                    assert_available(
                        conn,
                        existing["property_id"],
                        check_in,
                        check_out,
                        exclude_id=reservation_id,
                        error_cls=BadRequestError,
                    )
                except BadRequestError:
                    external_imports.labels(source=existing["source"], result="date_clash").inc()
                    raise

        if {"total_price", "commission_rate", "commission_amount"} & data.keys():
            split = commission_split(
                data.get("total_price", existing["total_price"]),
                existing["source"],
                explicit_rate=data.get("commission_rate", existing["commission_rate"]),
                explicit_amount=data.get("commission_amount"),
            )
            data.update(
                commission_rate=split.commission_rate,
                commission_amount=split.commission_amount,
                net_revenue=split.net_revenue,
            )
        if "total_price" in data:
            data["total_price"] = round_money(to_decimal(data["total_price"]))
        if data.get("guest_email"):
            data["guest_email"] = data["guest_email"].strip().lower()

        data["last_synced_at"] = utc_now()
        update_reservation_fields(conn, reservation_id, data)

        reservation = cast(dict[str, Any], reservation_reader.get_reservation(conn, reservation_id))
        if target_status is not None:
            reservation = state_machine.transition_status(
                conn, reservation, ReservationStatus(target_status), reason
            )

    logger.info(
        "external_booking_synced",
        reservation_id=reservation_id,
        source=existing["source"],
        fields=sorted(data.keys()),
        status=reservation["status"],
    )
    return reservation


def bulk_import(engine: Engine, payloads: list[ExternalBookingPayload]) -> dict[str, Any]:
    """
    Import channel bookings one by one; one failure never aborts the batch.

    Args:
        engine: SQLAlchemy engine
        payloads: Channel bookings in the order received

    Returns:
        dict: imported_count, failed_count and per-item results in input order.
            Each result has index, external_id, success and either
            reservation_id or error / error_kind.
    """
    results: list[dict[str, Any]] = []
    for index, payload in enumerate(payloads):
        item: dict[str, Any] = {"index": index, "external_id": payload.external_id}
        try:
            reservation = import_booking(engine, payload)
            item.update(success=True, reservation_id=reservation["id"])
        except BookingError as exc:
            item.update(
                success=False, error=exc.message, error_kind=exc.kind.value, details=exc.details
            )
        except Exception as exc:
            logger.exception(
                "bulk_import_item_failed", index=index, external_id=payload.external_id
            )
            item.update(success=False, error=str(exc), error_kind="internal_error")
        results.append(item)

    imported = sum(1 for r in results if r["success"])
    logger.info("bulk_import_finished", imported_count=imported, failed_count=len(results) - imported)
    return {
        "imported_count": imported,
        "failed_count": len(results) - imported,
        "results": results,
    }


def revenue_by_source(engine: Engine) -> dict[str, dict[str, Any]]:
    """
    Summarise revenue per channel over CONFIRMED, CHECKED_IN and COMPLETED reservations.

    Net revenue falls back to the total price when a reservation has none
    (direct bookings before a commission split).

    Returns:
        dict: source -> booking_count, total_revenue, total_commission,
            net_revenue, currency
    """
    with engine.connect() as conn:
        rows = reservation_reader.get_revenue_rows(conn)

    summary: dict[str, dict[str, Any]] = {}
    for row in rows:
        source = row["source"] or BookingSource.DIRECT.value
        entry = summary.setdefault(
            source,
            {
                "booking_count": 0,
                "total_revenue": ZERO,
                "total_commission": ZERO,
                "net_revenue": ZERO,
                "currency": row["currency"],
            },
        )
        total = to_decimal(row["total_price"])
        entry["booking_count"] += 1
        entry["total_revenue"] += total
        entry["total_commission"] += to_decimal(row["commission_amount"])
        entry["net_revenue"] += (
            to_decimal(row["net_revenue"]) if row["net_revenue"] is not None else total
        )

    for entry in summary.values():
        for key in ("total_revenue", "total_commission", "net_revenue"):
            entry[key] = round_money(Decimal(entry[key]))
    return summary


def find_by_external_id(engine: Engine, source: str, external_id: str) -> dict[str, Any]:
    """
    Raises:
        NotFoundError: If no reservation matches the pair
    """
    with engine.connect() as conn:
        reservation = reservation_reader.find_by_external_id(conn, source.upper(), external_id)
    if reservation is None:
        raise NotFoundError(
            f"No booking found from {source} with external ID {external_id!r}",
            source=source,
            external_id=external_id,
        )
    return reservation


def list_external_bookings(
    engine: Engine, source: Optional[str] = None, page: int = 1, limit: int = 10
) -> dict[str, Any]:
    """Page through channel reservations, newest first, optionally for one source."""
    page = max(page, 1)
    limit = min(max(limit, 1), MAX_PAGE_SIZE)
    with engine.connect() as conn:
        rows, total = reservation_reader.list_external_reservations(
            conn, source=source.upper() if source else None, offset=(page - 1) * limit, limit=limit
        )
    return {
        "bookings": rows,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "total_pages": ceil(total / limit) if total else 0,
        },
    }
