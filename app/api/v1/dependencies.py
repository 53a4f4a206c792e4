from typing import Generator

from fastapi import Request
from sqlalchemy.orm import Session

from app.db.session import SessionLocal
from app.services.event_fanout import EventFanout
from app.services.lending_coordinator import LendingCoordinator


def get_db() -> Generator[Session, None, None]:
    """
    Dependencia para obtener una sesión de base de datos por request.
    """
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def get_coordinator(request: Request) -> LendingCoordinator:
    """Coordinador único del proceso, creado en el startup."""
    return request.app.state.coordinator


def get_fanout(request: Request) -> EventFanout:
    return request.app.state.fanout
