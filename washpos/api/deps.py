"""API dependencies wiring services to the record store."""

from typing import Annotated

from fastapi import Depends

from washpos.config import Settings, get_settings
from washpos.database import async_session_factory
from washpos.services.booking_state_service import BookingStateManager
from washpos.services.record_store import RecordStore, SQLAlchemyRecordStore
from washpos.services.wash_workflow_service import WashWorkflowService


def get_record_store() -> RecordStore:
    """Record store over the application database (overridden in tests)."""
    return SQLAlchemyRecordStore(async_session_factory)


def get_state_manager(
    store: Annotated[RecordStore, Depends(get_record_store)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> BookingStateManager:
    return BookingStateManager(store, settings)


def get_workflow_service(
    store: Annotated[RecordStore, Depends(get_record_store)],
    state_manager: Annotated[BookingStateManager, Depends(get_state_manager)],
    settings: Annotated[Settings, Depends(get_settings)],
) -> WashWorkflowService:
    return WashWorkflowService(store, state_manager, settings)
