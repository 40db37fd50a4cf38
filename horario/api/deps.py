from fastapi import Request

from horario.api.store import InMemoryStore


def get_store(request: Request) -> InMemoryStore:
    return request.app.state.store
