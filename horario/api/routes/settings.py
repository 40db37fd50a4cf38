from fastapi import APIRouter, Depends

from horario.api.deps import get_store
from horario.api.store import InMemoryStore
from horario.schemas.timetable import ScheduleSlotCatalog

router = APIRouter()


@router.get("/configuracoes-horario", response_model=ScheduleSlotCatalog)
def get_schedule_slot_catalog(store: InMemoryStore = Depends(get_store)) -> ScheduleSlotCatalog:
    return store.catalog
