from decimal import Decimal

from washpos.domain.booking_state import BookingState
from washpos.domain.payment_status import PaymentStatus, append_note, determine_payment_status
from washpos.schemas.booking import FailureReason, FinishChoice, FinishOutcome
from washpos.services.record_store import BOOKINGS, TRANSACTIONS


async def test_end_to_end_pay_later_then_pay(manager, store, make_booking):
    booking_id = await make_booking(state="booked")

    assert (await manager.initialize_booking(booking_id)).new_state is BookingState.DRAFT

    started = await manager.transition_state(booking_id, "Start")
    assert started.success and started.new_state is BookingState.IN_PROGRESS

    notes = "Payment Status: unpaid\nStatus updated to in_progress at 2025-07-02 09:54:58"
    assert determine_payment_status(notes, "in_progress") is PaymentStatus.UNPAID

    finished = await manager.transition_state(booking_id, "Finish")
    assert finished.success and finished.new_state is BookingState.DEPARTED

    notes = append_note(notes, "Payment Status: paid | Method: Cash")
    assert determine_payment_status(notes, "departed") is PaymentStatus.PAID


async def test_start_wash_marks_unpaid(workflow, store, make_booking):
    booking_id = await make_booking(notes="Customer asked for extra wax")

    result = await workflow.start_wash(booking_id)

    assert result.new_state is BookingState.IN_PROGRESS
    lines = store.booking(booking_id)["notes"].split("\n")
    assert lines[0] == "Customer asked for extra wax"
    assert lines[1] == "Payment Status: unpaid"
    assert lines[2].startswith("Status updated to in_progress at ")


async def test_start_wash_keeps_existing_payment(workflow, store, make_booking):
    booking_id = await make_booking(notes="Payment Status: paid | Payment Method: Card")

    await workflow.start_wash(booking_id)

    assert "Payment Status: unpaid" not in store.booking(booking_id)["notes"]


async def test_start_wash_rejected_from_departed(workflow, store, make_booking):
    booking_id = await make_booking(state="departed", notes=None)

    result = await workflow.start_wash(booking_id)

    assert not result.success
    assert store.booking(booking_id)["notes"] is None


async def test_finish_unpaid_requires_decision(workflow, store, make_booking):
    booking_id = await make_booking()
    await workflow.start_wash(booking_id)

    result = await workflow.finish_wash(booking_id)

    assert result.outcome is FinishOutcome.PAYMENT_DECISION_REQUIRED
    assert result.choices == [FinishChoice.PAY_NOW, FinishChoice.PAY_LATER, FinishChoice.CANCEL]
    assert store.booking(booking_id)["state"] == "in_progress"


async def test_finish_pay_now_and_cancel_do_not_transition(workflow, store, make_booking):
    booking_id = await make_booking()
    await workflow.start_wash(booking_id)

    pay_now = await workflow.finish_wash(booking_id, FinishChoice.PAY_NOW)
    cancel = await workflow.finish_wash(booking_id, FinishChoice.CANCEL)

    assert pay_now.outcome is FinishOutcome.COLLECT_PAYMENT
    assert cancel.outcome is FinishOutcome.NO_ACTION
    assert store.booking(booking_id)["state"] == "in_progress"


async def test_finish_pay_later_keeps_unpaid_marker(workflow, store, make_booking):
    booking_id = await make_booking()
    await workflow.start_wash(booking_id)

    result = await workflow.finish_wash(booking_id, FinishChoice.PAY_LATER)

    assert result.outcome is FinishOutcome.FINISHED_UNPAID
    assert result.new_state is BookingState.DEPARTED
    assert result.payment_status is PaymentStatus.UNPAID
    assert "Payment Status: unpaid" in store.booking(booking_id)["notes"]

    summary = await workflow.get_booking_summary(booking_id)
    assert summary.show_unpaid_badge


async def test_pay_then_finish(workflow, store, make_booking):
    booking_id = await make_booking(total_price="91.30")
    await workflow.start_wash(booking_id)

    payment = await workflow.record_payment(booking_id)

    assert payment.success
    assert payment.payment_status is PaymentStatus.PAID
    transaction = store.collections[TRANSACTIONS][0]
    assert transaction["id"] == payment.transaction_id
    assert transaction["amount"] == Decimal("91.30")
    assert transaction["payment_method"] == "Cash"
    assert transaction["customer_id"] == 7

    notes = store.booking(booking_id)["notes"]
    assert "Payment Status: unpaid" in notes
    assert "Payment Status: paid | Payment Method: Cash | Amount Paid: $91.30" in notes

    result = await workflow.finish_wash(booking_id)
    assert result.outcome is FinishOutcome.FINISHED_PAID
    assert result.new_state is BookingState.DEPARTED

    completed = await workflow.finish_wash(booking_id)
    assert completed.new_state is BookingState.COMPLETED
    assert not (await workflow.get_booking_summary(booking_id)).show_unpaid_badge


async def test_completed_unpaid_booking_still_shows_badge(workflow, make_booking):
    booking_id = await make_booking(state="completed", notes="Payment Status: unpaid")
    summary = await workflow.get_booking_summary(booking_id)
    assert summary.payment_status is PaymentStatus.UNPAID
    assert summary.show_unpaid_badge
    assert summary.state_label == "Completed"
    assert summary.valid_actions == []


async def test_record_payment_rejects_cancelled_and_missing(workflow, make_booking):
    booking_id = await make_booking(state="cancelled")

    cancelled = await workflow.record_payment(booking_id, method="Card")
    missing = await workflow.record_payment(999)

    assert cancelled.reason is FailureReason.INVALID_TRANSITION
    assert missing.reason is FailureReason.NOT_FOUND


async def test_payment_survives_transaction_write_failure(workflow, store, make_booking):
    booking_id = await make_booking(state="in_progress")
    store.fail.add(("insert", TRANSACTIONS))

    result = await workflow.record_payment(booking_id, method="Card", amount=Decimal("20"))

    assert result.success
    assert result.transaction_id is None
    assert "Payment Method: Card | Amount Paid: $20.00" in store.booking(booking_id)["notes"]


async def test_payment_fails_when_notes_cannot_be_written(workflow, store, make_booking):
    booking_id = await make_booking(state="in_progress")
    store.fail.add(("update", BOOKINGS))

    result = await workflow.record_payment(booking_id)

    assert not result.success
    assert result.reason is FailureReason.PERSISTENCE
    assert TRANSACTIONS not in store.collections


async def test_notes_append_retries_after_concurrent_edit(workflow, store, make_booking):
    booking_id = await make_booking(state="in_progress", notes="first")

    async def concurrent_note(collection, filters, patch):
        store.booking(booking_id)["notes"] = "first\nsecond"

    store.before_update = concurrent_note
    await workflow.record_payment(booking_id, method="Cash", amount=Decimal("5"))

    notes = store.booking(booking_id)["notes"].split("\n")
    assert notes[:2] == ["first", "second"]
    assert notes[2].startswith("Payment Status: paid")


async def test_finish_missing_booking(workflow):
    result = await workflow.finish_wash(31)
    assert result.outcome is FinishOutcome.FAILED
    assert result.reason is FailureReason.NOT_FOUND


async def test_list_summaries_most_recent_first(workflow, make_booking):
    first = await make_booking()
    second = await make_booking(state="booked")

    summaries = await workflow.list_booking_summaries()

    assert [s.booking_id for s in summaries] == [second, first]


async def test_summary_of_unknown_state_is_logged(workflow, make_booking, caplog):
    booking_id = await make_booking(state="finished")

    summary = await workflow.get_booking_summary(booking_id)

    assert summary.state is BookingState.DRAFT
    assert f"Booking {booking_id} has unknown state 'finished'" in caplog.text
