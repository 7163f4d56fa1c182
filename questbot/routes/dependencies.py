"""FastAPI dependencies: collaborators wired by create_app() onto app.state."""

from fastapi import Request

from questbot.engine import ChoiceProcessor
from questbot.ranking import RankCalculator
from questbot.storage import Persistence
from questbot.transport import Transport


def get_engine(request: Request) -> ChoiceProcessor:
    return request.app.state.engine


def get_storage(request: Request) -> Persistence:
    return request.app.state.storage


def get_ranks(request: Request) -> RankCalculator:
    return request.app.state.ranks


def get_transport(request: Request) -> Transport:
    return request.app.state.transport
